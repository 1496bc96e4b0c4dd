import asyncio

from txkeeper import ContentionError, connect


async def run():
    db = await connect("bank.db", busy_timeout_ms=100)
    await db.execute(
        "CREATE TABLE IF NOT EXISTS accounts "
        "(id INTEGER PRIMARY KEY, owner TEXT, balance INTEGER)"
    )
    await db.insert("accounts", {"owner": "alice", "balance": 100})
    await db.insert("accounts", {"owner": "bob", "balance": 0})

    async def transfer(tx):
        await tx.execute(
            "UPDATE accounts SET balance = balance - ? WHERE owner = ?",
            (30, "alice"),
        )

        async def bonus(inner):
            await inner.update("accounts", {"balance": 1000}, {"owner": "bob"})
            raise ValueError("bonus not approved")

        try:
            await tx.nested(bonus)
        except ValueError:
            pass

        await tx.execute(
            "UPDATE accounts SET balance = balance + ? WHERE owner = ?",
            (30, "bob"),
        )
        return await tx.select("accounts", order_by=["id"])

    try:
        print(await db.transaction(transfer, tries=3, backoff_ms=20))
    except ContentionError:
        print("database stayed busy")
    finally:
        await db.close()


asyncio.run(run())
