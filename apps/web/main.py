"""FastAPI web application for safebump."""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from safebump.detect import identify
from safebump.ecosystems import rewrite_manifest
from safebump.errors import ManifestParseError
from safebump.models import Ecosystem, ManifestFile
from safebump.report import render_pull_request_body
from safebump.resolve import RegistryResolver
from safebump.scan import scan_manifest

app = FastAPI(
    title="safebump",
    description="Preview dependency updates for a manifest without security checks or writes",
    version="0.1.0",
)

DEFAULT_FILENAMES = {
    Ecosystem.NPM: "package.json",
    Ecosystem.PYTHON: "requirements.txt",
}


class PreviewRequest(BaseModel):
    """Request model for a dry-run preview."""
    content: str
    filename: str | None = None
    ecosystem: str | None = None


class CandidateUpdate(BaseModel):
    name: str
    category: str
    current_version: str
    latest_version: str
    update_type: str


class PreviewResponse(BaseModel):
    """Response model for a dry-run preview."""
    ecosystem: str
    original_content: str
    updated_content: str
    updates: list[CandidateUpdate]
    has_changes: bool
    pull_request_body: str | None = None


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/preview", response_model=PreviewResponse)
async def preview_updates(request: PreviewRequest):
    """List outdated dependencies of a manifest and show what a pull request would contain."""
    content = request.content
    if not content.strip():
        raise HTTPException(status_code=400, detail="No content provided")

    # Detect ecosystem
    detected = request.ecosystem or identify(content, request.filename)
    if detected not in {ecosystem.value for ecosystem in Ecosystem}:
        raise HTTPException(status_code=400, detail=f"Unsupported ecosystem: {detected}")

    ecosystem = Ecosystem(detected)
    manifest = ManifestFile(
        path=request.filename or DEFAULT_FILENAMES[ecosystem],
        ecosystem=ecosystem,
        content=content,
    )

    try:
        resolver = RegistryResolver()
        updates = await scan_manifest(manifest, resolver)
    except ManifestParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error processing dependencies: {str(e)}")

    return PreviewResponse(
        ecosystem=ecosystem.value,
        original_content=content,
        updated_content=rewrite_manifest(manifest, updates).content,
        updates=[
            CandidateUpdate(
                name=update.name,
                category=update.category.value,
                current_version=update.current_spec,
                latest_version=update.latest_version,
                update_type=update.tier.value,
            )
            for update in updates
        ],
        has_changes=bool(updates),
        pull_request_body=render_pull_request_body(manifest, updates) if updates else None,
    )
