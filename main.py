import sys
import asyncio
import logging

from salesync.config import ENV_PATH, load_env_file, load_settings
from salesync.local_api import start_local_api
from salesync.network import StatusBridge
from salesync.services import build_context

logger = logging.getLogger("Main")


async def run_once(context):
    """Single probe + replay, for cron-style use."""
    await context.start(poll=False)
    await context.monitor.probe_once(context.remote.ping)
    if context.session.is_authenticated():
        report = await context.engine.sync_pending_operations()
        print(f"[*] Replay: {report.synced} synced, {report.failed} failed"
              f"{' (skipped, offline)' if report.skipped else ''}")
    else:
        print("[!] No active session. Log in through the local API first.")


async def run_forever(context):
    settings = context.settings
    identity = await context.start()
    if identity:
        print(f"[*] Session restored: {identity.display_name} (id={identity.id})")
    else:
        print("[*] No session. Log in through the local API.")

    bridge = StatusBridge(context)
    print(f"[*] Status bridge on ws://{settings.bridge_host}:{settings.bridge_port}")
    print(f"[*] Local API on http://{settings.api_host}:{settings.api_port}")
    await asyncio.gather(
        bridge.serve(settings.bridge_host, settings.bridge_port),
        start_local_api(context, settings.api_host, settings.api_port),
    )


async def amain():
    print("=== salesync client ===")

    # 1. Load Settings
    load_env_file(ENV_PATH)
    settings = load_settings()
    logging.getLogger().setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    print(f"[*] Remote: {settings.server_url}")
    print(f"[*] Local store: {settings.db_path}")

    # 2. Build services
    context = build_context(settings)

    # 3. Main Loop
    try:
        if "--once" in sys.argv:
            await run_once(context)
        else:
            await run_forever(context)
    finally:
        await context.close()


def main():
    try:
        asyncio.run(amain())
    except KeyboardInterrupt:
        print("\n[!] Shutting down...")


if __name__ == "__main__":
    main()
