"""Quickstart examples for aumai-saga.

Demonstrates saga semantics for sequential asynchronous steps:
  1. Successful run (all steps pass)
  2. Automatic rollback on step failure
  3. Cooperative abort from inside a step
  4. Context injection with seeded values

Run directly:
    python examples/quickstart.py
"""

from __future__ import annotations

import asyncio
import logging

from aumai_saga import Transaction

# ---------------------------------------------------------------------------
# Shared "external" state that steps change and compensations restore
# ---------------------------------------------------------------------------

_accounts: dict[str, int] = {"alice": 100, "bob": 20}


def _transfer(source: str, target: str, amount: int, *, fail: bool = False):
    """Factory returning a transfer action, optionally failing after the debit."""
    async def action(context: dict) -> dict[str, int]:
        await asyncio.sleep(0.01)
        if fail:
            raise RuntimeError(f"Transfer {source}->{target} rejected")
        _accounts[source] -= amount
        _accounts[target] += amount
        print(f"  transferred {amount} {source}->{target}: {_accounts}")
        return dict(_accounts)

    return action


def _undo_transfer(source: str, target: str, amount: int):
    async def compensation(context: dict) -> None:
        _accounts[source] += amount
        _accounts[target] -= amount
        print(f"  [UNDO] returned {amount} {target}->{source}: {_accounts}")

    return compensation


# ---------------------------------------------------------------------------
# Demos
# ---------------------------------------------------------------------------


async def demo_success() -> None:
    print("\n=== Demo 1: successful run ===")
    tx = (
        Transaction()
        .add("pay_bob", _transfer("alice", "bob", 10), _undo_transfer("alice", "bob", 10))
        .add("pay_back", _transfer("bob", "alice", 5), _undo_transfer("bob", "alice", 5))
    )
    await tx.execute()
    print(f"  success={tx.success()} results={list(tx.results_all())}")
    assert tx.success()


async def demo_rollback() -> None:
    print("\n=== Demo 2: rollback on failure ===")
    before = dict(_accounts)
    tx = (
        Transaction()
        .add("pay_bob", _transfer("alice", "bob", 30), _undo_transfer("alice", "bob", 30))
        .add("pay_carol", _transfer("bob", "carol", 5, fail=True))
        .add("notify", _transfer("alice", "bob", 1))
    )
    await tx.execute()
    print(f"  failed={tx.failed()} error={tx.error_from('pay_carol')!r}")
    print(f"  notify skipped={tx.step_skipped('notify')}")
    assert tx.failed()
    assert _accounts == before


async def demo_abort() -> None:
    print("\n=== Demo 3: cooperative abort ===")
    tx = Transaction()

    async def check_limits(context: dict) -> bool:
        print(f"  abort accepted={tx.abort()}")
        return True

    tx.add("pay_bob", _transfer("alice", "bob", 10), _undo_transfer("alice", "bob", 10))
    tx.add("check_limits", check_limits)
    tx.add("pay_more", _transfer("alice", "bob", 10))
    await tx.execute()
    print(f"  summary: {tx.summary().model_dump_json(indent=2)}")


async def demo_injection() -> None:
    print("\n=== Demo 4: context injection ===")
    tx = Transaction({"fee": 2}, inject_context=True)

    async def quote(context: dict, previous: object) -> int:
        return 40 + context["$fee"]

    async def confirm(context: dict, previous: object) -> str:
        return f"charged {previous}"

    tx.add("quote", quote).add("confirm", confirm)
    await tx.execute()
    print(f"  results={tx.results_all()} running_time={tx.running_time():.4f}s")


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    await demo_success()
    await demo_rollback()
    await demo_abort()
    await demo_injection()


if __name__ == "__main__":
    asyncio.run(main())
