"""Test that project structure is correct and modules can be imported."""

import safebump.bot
import safebump.detect
import safebump.ecosystems
import safebump.models
from safebump.models import DeclaredDependency, Ecosystem, ResolvedUpdate, UpdateTier


def test_core_modules_importable():
    """Ensure core modules can be imported."""
    assert hasattr(safebump.models, "DeclaredDependency")
    assert hasattr(safebump.models, "ResolvedUpdate")
    assert hasattr(safebump.models, "SecurityVerdict")
    assert hasattr(safebump.detect, "identify")
    assert hasattr(safebump.bot, "DependencyBot")


def test_every_ecosystem_has_a_handler():
    """Each supported ecosystem should be registered for parsing and rewriting."""
    for ecosystem in Ecosystem:
        assert safebump.ecosystems.handler_for(ecosystem).ecosystem is ecosystem


def test_model_creation():
    """Test that basic models can be instantiated."""
    dependency = DeclaredDependency(name="fastapi", spec="==0.85.0", current_version="0.85.0")
    assert dependency.name == "fastapi"
    assert dependency.spec == "==0.85.0"

    update = ResolvedUpdate(dependency=dependency, latest_version="0.115.0", tier=UpdateTier.MINOR)
    assert update.name == "fastapi"
    assert update.current_spec == "==0.85.0"
    assert update.verdict is None
    assert not update.is_safe
