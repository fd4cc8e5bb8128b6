"""
TruthChain deployment readiness check

Checks the database, content store configuration and ledger connectivity
for the current .env and prints a checklist.

Usage:
    python scripts/check_ready.py
"""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text
from web3 import AsyncWeb3, AsyncHTTPProvider

from truthchain.core.config import settings
from truthchain.core.database import engine
from truthchain.services.content_store import resolve_backend
from truthchain.services.ledger import resolve_contract_address


async def check_database():
    """Connectivity and record count"""
    print("\n[1] Database")
    print("-" * 40)

    issues = []
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT COUNT(*) FROM news_records"))
            print(f"  OK   news_records: {result.scalar()} rows")
    except Exception as e:
        print(f"  FAIL {e}")
        issues.append(f"Database unavailable: {e}")
    finally:
        await engine.dispose()

    return issues


def check_content_store():
    print("\n[2] Content store")
    print("-" * 40)

    issues = []
    backend = resolve_backend(settings)
    print(f"  Backend: {backend} (CONTENT_STORE_BACKEND={settings.CONTENT_STORE_BACKEND})")

    if backend == "pinata" and not settings.PINATA_JWT:
        issues.append("CONTENT_STORE_BACKEND=pinata but PINATA_JWT is empty")
    elif backend == "web3storage" and not settings.WEB3_STORAGE_TOKEN:
        issues.append("CONTENT_STORE_BACKEND=web3storage but WEB3_STORAGE_TOKEN is empty")
    elif backend == "local":
        print(f"  WARN local storage in {settings.LOCAL_UPLOAD_DIR} (content ids are not IPFS CIDs)")

    return issues


async def check_ledger():
    """RPC reachability, chain id, contract code and signer balance"""
    print("\n[3] Ledger")
    print("-" * 40)

    issues = []
    print(f"  Verification mode: {settings.VERIFICATION_MODE}")
    if settings.VERIFICATION_MODE == "offline_test":
        print("  WARN offline_test: records are not anchored on-chain")
        return issues

    contract_address = resolve_contract_address(settings)
    if not contract_address:
        issues.append("No contract address (CONTRACT_ADDRESS or contract-config.json)")
        return issues

    w3 = AsyncWeb3(AsyncHTTPProvider(settings.LEDGER_RPC_URL))
    try:
        chain_id = await w3.eth.chain_id
        status = "OK  " if chain_id == settings.LEDGER_CHAIN_ID else "FAIL"
        print(f"  {status} chain id: {chain_id} (expected {settings.LEDGER_CHAIN_ID})")
        if chain_id != settings.LEDGER_CHAIN_ID:
            issues.append(f"Chain id mismatch: {chain_id} != {settings.LEDGER_CHAIN_ID}")

        code = await w3.eth.get_code(w3.to_checksum_address(contract_address))
        if len(code) == 0:
            print(f"  FAIL no contract code at {contract_address}")
            issues.append(f"No contract deployed at {contract_address}")
        else:
            print(f"  OK   contract at {contract_address}")

        if settings.LEDGER_PRIVATE_KEY:
            account = w3.eth.account.from_key(settings.LEDGER_PRIVATE_KEY)
            balance = await w3.eth.get_balance(account.address)
            print(f"  Signer {account.address}: {w3.from_wei(balance, 'ether')}")
            if balance == 0:
                issues.append("Server signer has no balance for gas")
        elif settings.LEDGER_SERVER_SUBMIT:
            issues.append("LEDGER_SERVER_SUBMIT=true but LEDGER_PRIVATE_KEY is empty")
    except Exception as e:
        print(f"  FAIL RPC error: {e}")
        issues.append(f"Ledger RPC unavailable: {e}")

    return issues


async def main():
    print("=" * 50)
    print(f"{settings.APP_NAME} readiness ({settings.ENVIRONMENT})")
    print("=" * 50)

    issues = []
    issues.extend(await check_database())
    issues.extend(check_content_store())
    issues.extend(await check_ledger())

    print("\n" + "=" * 50)
    if issues:
        print(f"{len(issues)} issue(s):")
        for issue in issues:
            print(f"  - {issue}")
        return 1

    print("Ready")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
