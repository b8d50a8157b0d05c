"""
action_guard — Hello World

Every server action gets the same chain of checks. Steps run in
declaration order; the first failing step stops the chain and the
handler never runs.
"""

import asyncio
import logging

from pydantic import BaseModel

from action_guard import (
    create_action_guard,
    custom_auth,
    generate_csrf_token,
)

logging.basicConfig(level=logging.INFO, format="  %(name)s: %(message)s")

# ─── Your data and handlers (completely decoupled from the guard) ───

SESSIONS = {
    "token-alice": {"id": "alice@acme.com", "role": "editor"},
    "token-bob": {"id": "bob@acme.com", "role": "viewer"},
}


class CreatePost(BaseModel):
    title: str
    body: str


def lookup_user(headers):
    token = (headers.get("authorization") or "").removeprefix("Bearer ").strip()
    return SESSIONS.get(token)


async def create_post(post: CreatePost, ctx) -> dict:
    return {"title": post.title, "body": post.body, "author": ctx.user["id"]}


def show(label, result) -> None:
    print(f"  {label}: {result.as_dict()}")


async def main():
    # ──────────────────────────────────────
    #  1. Create the guard
    # ──────────────────────────────────────
    guard = create_action_guard(auth=custom_auth(lookup_user))

    # ──────────────────────────────────────
    #  2. Declare the chain (order = run order)
    # ──────────────────────────────────────
    authed = guard.auth().rate_limit(max_requests=3, window="1m")

    create = (
        authed.csrf()
        .schema(CreatePost)
        .sanitize()
        .audit(action="CREATE_POST", resource="posts")
        .action(create_post)
    )

    csrf = generate_csrf_token()
    alice = {
        "authorization": "Bearer token-alice",
        "x-actionguard-csrf": csrf,
        "cookie": f"actionguard-csrf={csrf}",
    }

    # ──────────────────────────────────────
    #  3. Allowed request (input is escaped)
    # ──────────────────────────────────────
    print("=== Allowed request ===\n")
    result = await create({"title": "Hello <b>world</b>", "body": "first!"}, headers=alice)
    show("create", result)

    # ──────────────────────────────────────
    #  4. Unknown caller, denied at the first step
    # ──────────────────────────────────────
    print("\n=== Unknown caller ===\n")
    show("create", await create({"title": "x", "body": "y"}, headers={"authorization": "nope"}))

    # ──────────────────────────────────────
    #  5. Missing CSRF header
    # ──────────────────────────────────────
    print("\n=== Missing CSRF header ===\n")
    no_csrf = {**alice, "x-actionguard-csrf": ""}
    show("create", await create({"title": "x", "body": "y"}, headers=no_csrf))

    # ──────────────────────────────────────
    #  6. Invalid input
    # ──────────────────────────────────────
    print("\n=== Invalid input ===\n")
    show("create", await create({"title": "no body"}, headers=alice))

    # ──────────────────────────────────────
    #  7. Rate limit exhaustion (separate budget per user)
    # ──────────────────────────────────────
    print("\n=== Rate limit exhaustion ===\n")
    whoami = authed.action(lambda data, ctx: ctx.user["id"])
    for i in range(4):
        show(f"request #{i + 1}", await whoami(headers={"authorization": "Bearer token-bob"}))

    print("\nPipeline JSON:", authed.csrf().schema(CreatePost).sanitize().export())


if __name__ == "__main__":
    asyncio.run(main())
