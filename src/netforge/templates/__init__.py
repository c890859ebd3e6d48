"""
netforge.templates - Jinja2 Template Files
==========================================

Jinja2 templates rendered into new and existing .NET repositories by
``netforge.generator``.

Template Naming Convention
--------------------------
- Templates end with `.j2`
- The output path is looked up in ``generator.TEMPLATE_MAPPINGS``
- `github/` holds GitHub Actions workflows, `azure/` Azure Pipelines
- `workflows_repo/` holds the pages of the shared ci-cd-workflows repository

GitHub and Azure expressions (``${{ ... }}``) clash with Jinja2 syntax, so
workflow templates wrap their body in ``{% raw %}`` and close the raw block
only around the few values netforge substitutes.

Template Context
----------------
    config : ForgeConfig
        The persisted configuration (organization, company, branch...)

    repo : RepositorySpec
        Repository being generated

    license : License
        Effective license for the repository

    platform : Platform
        github or azure

    year : int
        Current year (for licenses)

    netforge_version, dotnet_version, nbgv_version : str
        Tool versions written into generated files
"""
