import argparse
import asyncio
import json

from endpoint_models import Caller, MemoryCacheStore, ModelFetcher, ModelsConfigService, Verbosity


async def main():
    parser = argparse.ArgumentParser(description="Resolve and print the models config.")
    parser.add_argument("--details", action="store_true", help="Include model details")
    parser.add_argument("--user", default="cli", help="Caller id sent to providers")
    args = parser.parse_args()

    service = ModelsConfigService(MemoryCacheStore(), ModelFetcher())
    resolved = await service.load_models(Caller(id=args.user), Verbosity.from_flag(args.details))

    models = resolved.models
    print(f"--- Resolved Models ({sum(len(v) for v in models.values())} total) ---")
    print(json.dumps(resolved.to_payload(), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
