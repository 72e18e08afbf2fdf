#!/usr/bin/env python3
import sys
import os

print("Running walletflow preflight check...")
try:
    os.environ.setdefault("STORAGE_BACKEND", "memory")

    import walletflow.main
    print("Import walletflow.main: OK")

    from walletflow.core.engine import WalletEngine
    from walletflow.settings import settings

    engine = WalletEngine()
    print(f"Engine wired: storage={type(engine.storage).__name__} api={settings.API_BASE_URL}")
    print(f"Retry policy: timeout={settings.REQUEST_TIMEOUT_SEC}s retries={settings.MAX_RETRIES}")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
