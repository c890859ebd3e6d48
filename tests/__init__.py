"""
netforge test suite
===================

No test touches GitHub or Azure: provisioners receive the
``RecordingRunner`` from conftest.py instead of a real ``CommandRunner``.

Test Modules
------------
- test_models.py: Pydantic configuration and repository models
- test_config.py: config file, environment detection and prompts
- test_runner.py: external command runner
- test_generator.py: template rendering, scaffolding and validation
- test_github.py / test_azure.py: repository provisioners
- test_keyvault.py: Key Vault integration
- test_updater.py: bulk update of existing repositories
- test_bootstrap.py: organization bootstrap
- test_cli.py: command-line interface

Running Tests
-------------
    # Run all tests
    pytest

    # Run specific module
    pytest tests/test_github.py

    # Run specific test class
    pytest tests/test_cli.py::TestNewCommand
"""
