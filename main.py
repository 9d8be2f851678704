#!/usr/bin/env python3
"""Main entry point: ask a chat model a question from the command line"""

import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv
from loguru import logger

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"


def configure_logging(debug: bool = False):
    """Coloured stderr sink plus a rotating JSON file sink"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO", format=LOG_FORMAT)
    logger.add("logs/t3bridge_json_{time}.log", rotation="1 day", retention="7 days", level="DEBUG", serialize=True)


# Load environment variables
load_dotenv()

from t3bridge.browser.session import ChatSession
from t3bridge.catalog.parser import ModelCatalog
from t3bridge.extraction.config import load_config
from t3bridge.extraction.errors import CatalogError, ConfigError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Ask a T3.CHAT model a question through a headless browser')
    parser.add_argument('question', nargs='?', help='Question for the model')
    parser.add_argument('--model', type=str, default=os.getenv('T3BRIDGE_DEFAULT_MODEL', 'Gemini 2.5 Flash'),
                        help='Model name (case-insensitive substring of a catalog entry)')
    parser.add_argument('--search', action='store_true', help='Enable web search (for models that support it)')
    parser.add_argument('--image-url', type=str, help='URL of visual content (for vision models)')
    parser.add_argument('--pdf-url', type=str, help='URL of a document (for document-capable models)')
    parser.add_argument('--config', type=str, help='YAML file overriding extraction settings')
    parser.add_argument('--models-file', type=str, help='Model catalog (default: models.md)')
    parser.add_argument('--output', type=str, default='generated_image.png',
                        help='Where to write a generated image')
    parser.add_argument('--list-models', action='store_true', help='List catalog models and exit')
    parser.add_argument('--headless', action='store_true', help='Run browser in headless mode (no UI)')
    parser.add_argument('--debug', action='store_true', help='Enable verbose logging')
    return parser


def print_models(catalog: ModelCatalog):
    for model in catalog.models:
        features = ', '.join(model.features.enabled()) or 'standard'
        print(f"{model.provider:<12} {model.name:<32} [{model.tier}] {features}")


async def main() -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args()
    configure_logging(debug=args.debug)

    try:
        catalog = ModelCatalog.load(args.models_file)
        config = load_config(args.config)
    except (CatalogError, ConfigError) as e:
        logger.error(str(e))
        return 1

    if args.list_models:
        print_models(catalog)
        return 0

    if not args.question:
        logger.error("A question is required unless --list-models is given")
        return 1

    model = catalog.get_model_by_name(args.model)
    if not model:
        logger.error(f"No model matching '{args.model}'. Use --list-models to see available options")
        return 1

    missing = model.unsupported_features(args.image_url, args.pdf_url, args.search)
    if missing:
        logger.error(f"{model.name} doesn't support: {', '.join(missing)}")
        return 1

    access_token = os.getenv('T3_ACCESS_TOKEN')
    if not access_token:
        logger.error("T3_ACCESS_TOKEN is not set. Please add it to your .env file")
        return 1

    session = ChatSession(
        access_token=access_token,
        use_beta_domain=os.getenv('USE_BETA_DOMAIN', 'true').lower() == 'true',
        config=config,
        headless=True if args.headless else None,
    )

    try:
        response = await session.ask(
            model,
            args.question,
            use_search=args.search,
            image_url=args.image_url,
            pdf_url=args.pdf_url,
        )
    except ValueError as e:
        # Invalid attachment URLs are rejected when the request is built
        logger.error(f"Invalid request: {e}")
        return 1
    finally:
        logger.debug(f"Run metrics: {session.metrics.get_summary()}")
        await session.close()

    result = response.result
    if result.image is not None:
        with open(args.output, 'wb') as f:
            f.write(result.image)
        logger.success(f"Image saved to {args.output} ({len(result.image)} bytes, {result.elapsed_ms / 1000:.1f}s)")
        return 0

    if result.text is not None:
        print(result.text)
        logger.success(f"Response extracted in {result.elapsed_ms / 1000:.1f}s via {result.candidate.strategy}")
        return 0

    print(response.fallback_message)
    logger.warning(f"Extraction ended with outcome '{result.outcome.value}'")
    return 2


def cli():
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
