"""storyloom: resilient upstream calls for an illustrated children's-story app.

Packages:
    core          errors, structured logging, settings
    execution     admission control, deadlines and retries for upstream calls
    integrations  upstream API clients (image generation)
    api           FastAPI application
    cli           Typer command-line interface
"""

__version__ = "0.1.0"
