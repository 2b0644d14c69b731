import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .core.config import get_settings
from .core.models import PipelineOptions, Provenance, SourceModule
from .core.pipeline import ComponentPipeline


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("uvicorn").setLevel(logging.INFO)


logger = logging.getLogger(__name__)


def _compile(args) -> int:
    """Compile one file and print the result as JSON."""
    path = Path(args.file)
    try:
        code = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Could not read {path}: {e}")
        return 2

    options = PipelineOptions(
        use_cache=True if args.cache else None,
        force_recompile=args.force,
        debug=args.log_level == "DEBUG",
        timeout_ms=args.timeout_ms,
    )
    source = SourceModule(
        code=code,
        provenance=Provenance(args.provenance),
        options=options,
        metadata={"name": path.stem},
    )

    pipeline = ComponentPipeline.from_settings(get_settings())
    try:
        result = asyncio.run(pipeline.process(source))
    finally:
        pipeline.close()

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def _serve(args) -> int:
    """Run the HTTP API."""
    import uvicorn

    from .api.app import create_app

    pipeline = ComponentPipeline.from_settings(get_settings())
    app = create_app(pipeline)

    logger.info(f"Starting CanvasLoom API on {args.host}:{args.port}")
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    finally:
        pipeline.close()
    return 0


def main():
    """Main entry point for CanvasLoom."""
    parser = argparse.ArgumentParser(description="CanvasLoom - Component compile pipeline")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Compile and validate a component file")
    compile_parser.add_argument("file", help="Path to the component source")
    compile_parser.add_argument(
        "--provenance",
        type=str,
        default=Provenance.USER_PROVIDED.value,
        choices=[p.value for p in Provenance],
        help="Where the code came from"
    )
    compile_parser.add_argument("--cache", action="store_true", help="Cache the validated artifact")
    compile_parser.add_argument("--force", action="store_true", help="Skip the cache lookup")
    compile_parser.add_argument("--timeout-ms", type=int, default=None, help="Soft import timeout")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=9010, help="Port for the API server")

    args = parser.parse_args()
    setup_logging(args.log_level)

    if args.command == "compile":
        return _compile(args)
    return _serve(args)


if __name__ == "__main__":
    sys.exit(main())
