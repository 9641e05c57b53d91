# scripts/smoke_client.py
import asyncio
import os
import sys

from dotenv import load_dotenv

load_dotenv(override=True)  # must run before llmrelay is imported so settings see GEMINI_API_KEY

from llmrelay.client import ModelClient  # noqa: E402
from llmrelay.providers import ProviderError, ProviderRegistry  # noqa: E402
from llmrelay.relay import relay_stream  # noqa: E402

MODELS_TO_TEST = ["gemini-2.5-flash-lite", "gemini-2.5-flash"]


async def test_unary(client: ModelClient):
    """One-shot generation through the async path"""
    print(f"Testing unary on {client.model_name}...")
    try:
        text = await client.generate("What is 2+2?")
        print(f"   Response: {text}")
    except ProviderError as e:
        print(f"   ❌ {type(e).__name__}: {e.message}")
    print()


def test_blocking(client: ModelClient):
    """Same prompt through the thread-blocking path"""
    print(f"Testing blocking on {client.model_name}...")
    try:
        print(f"   Response: {client.generate_blocking('What is 2+2?')}")
    except ProviderError as e:
        print(f"   ❌ {type(e).__name__}: {e.message}")
    print()


async def test_streaming(client: ModelClient):
    """Print relayed fragments as they arrive"""
    print(f"Testing streaming on {client.model_name}...")
    async for event in relay_stream(client, "Count to 5"):
        if event.is_error:
            print(f"\n   ❌ {event.payload}")
            break
        print(event.payload, end="", flush=True)
    print("\n")


async def test_error_handling(registry: ProviderRegistry):
    """Expect BackendRejectedError from an invalid key"""
    client = ModelClient(registry).initialize("invalid-key-for-testing", MODELS_TO_TEST[0])

    print("Testing error handling (expect BackendRejectedError)...")
    try:
        await client.generate("Hello")
    except ProviderError as e:
        print(f"✅ Caught expected error: {type(e).__name__}: {e.message}")
    print()


async def main():
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        sys.exit("GEMINI_API_KEY is not set")

    print("=" * 60)
    print("LLM Relay Manual Testing")
    print("=" * 60)
    print()

    registry = ProviderRegistry(timeout=30)
    client = ModelClient(registry)
    for model_id in MODELS_TO_TEST:
        client.initialize(api_key, model_id)
        await test_unary(client)
        await asyncio.to_thread(test_blocking, client)
        await test_streaming(client)

    await test_error_handling(registry)

    print("=" * 60)
    print("Testing complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
