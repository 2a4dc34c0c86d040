"""Main entry point for running the FastAPI application with auto-reload."""
import uvicorn

from verifier.config import settings

if __name__ == "__main__":
    print(f"Starting {settings.app_name} v{settings.version}")
    print(f"Debug mode: {settings.debug}")
    print(f"Lookup backend: {settings.lookup.backend.value}")
    print(f"Batch size: {settings.matching.batch_size}, delay: {settings.matching.batch_delay_seconds}s")
    print(f"Auto-reload: {'Enabled' if settings.debug else 'Disabled'}")
    print("-" * 50)

    uvicorn.run(
        "verifier.api:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        reload_dirs=["verifier"] if settings.debug else None,
        reload_includes=["*.py"] if settings.debug else None,
        log_level=settings.logging.level.lower(),
    )
