"""Test package version and basic imports."""

import terranova


def test_version():
    """Verify package version is set."""
    assert terranova.__version__ == "0.1.0"


def test_package_imports():
    """Verify the public names can be imported."""
    from terranova import Platform, PlatformConfig, State, TerranovaError

    assert Platform is not None
    assert PlatformConfig is not None
    assert State is not None
    assert issubclass(TerranovaError, Exception)
