"""Copy users from a SQLite table into a memory store, checkpointing every 2 writes.

Run: ferry run examples/definitions
"""

import contextlib

stores = {
    "local": {"type": "sqlite", "name": ":memory:"},
    "archive": {"type": "memory", "name": "archive"},
}


async def create_users(store, registry):
    await store.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT)")
    for i, name in enumerate(["ada", "grace", "edsger", "barbara", "donald"], start=1):
        await store.insert("users", {"id": i, "name": name, "email": f"{name}@example.com"})


async def read_users(store, registry, process):
    async with contextlib.aclosing(store.stream("SELECT id, name, email FROM users ORDER BY id")) as rows:
        async for row in rows:
            await process(row)


def mask_email(store, registry, record):
    user, _, domain = record["email"].partition("@")
    return {**record, "email": f"{user[0]}***@{domain}"}


async def write_user(store, registry, record):
    await store.upsert("users", record)


def checkpoint(store, registry):
    registry["checkpoints"] = registry.get("checkpoints", 0) + 1


def report(store, registry):
    users = len(store.client.collection("users"))
    print(f"archive holds {users} users, {registry.get('checkpoints', 0)} checkpoints")


operation = {
    "name": "copy-users",
    "init": {"local": create_users},
    "extract": {"local": read_users},
    "transform": {"local": mask_email},
    "load": {"archive": write_user},
    "interval": {2: {"archive": checkpoint}},
    "exit": {"archive": report},
}
