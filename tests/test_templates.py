"""
Template CRUD and cache invalidation tests.
"""
import json

from notifyhub.services.template_cache import ALL_TEMPLATES_KEY, TemplateCache, template_key


TEMPLATE = {
    "name": "Welcome",
    "description": "Signup mail",
    "subject": "Welcome {{user_name}}",
    "html_content": "<p>Your code is {{code}}</p>",
    "variables": ["user_name", "code"],
}


async def test_create_and_get_template(client):
    created = await client.post("/api/templates", json=TEMPLATE)
    assert created.status_code == 201
    body = created.json()
    assert body["id"] > 0
    assert body["subject"] == TEMPLATE["subject"]
    assert body["variables"] == ["user_name", "code"]

    fetched = await client.get(f"/api/templates/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Welcome"


async def test_missing_template_is_404(client):
    assert (await client.get("/api/templates/999")).status_code == 404
    assert (await client.put("/api/templates/999", json=TEMPLATE)).status_code == 404
    assert (await client.delete("/api/templates/999")).status_code == 404


async def test_list_is_cached_and_invalidated_on_create(client, fake_redis):
    await client.post("/api/templates", json=TEMPLATE)

    listed = await client.get("/api/templates")
    assert [t["name"] for t in listed.json()] == ["Welcome"]
    assert ALL_TEMPLATES_KEY in fake_redis.store

    await client.post("/api/templates", json={**TEMPLATE, "name": "Reset"})
    assert ALL_TEMPLATES_KEY not in fake_redis.store

    listed = await client.get("/api/templates")
    assert {t["name"] for t in listed.json()} == {"Welcome", "Reset"}


async def test_update_invalidates_cached_template(client, fake_redis):
    template_id = (await client.post("/api/templates", json=TEMPLATE)).json()["id"]
    await client.get(f"/api/templates/{template_id}")
    await client.get("/api/templates")
    assert template_key(template_id) in fake_redis.store

    updated = await client.put(
        f"/api/templates/{template_id}",
        json={**TEMPLATE, "subject": "Hi again {{user_name}}"},
    )
    assert updated.status_code == 200
    assert template_key(template_id) not in fake_redis.store
    assert ALL_TEMPLATES_KEY not in fake_redis.store

    fetched = await client.get(f"/api/templates/{template_id}")
    assert fetched.json()["subject"] == "Hi again {{user_name}}"


async def test_delete_template(client, fake_redis):
    template_id = (await client.post("/api/templates", json=TEMPLATE)).json()["id"]
    await client.get(f"/api/templates/{template_id}")

    deleted = await client.delete(f"/api/templates/{template_id}")
    assert deleted.status_code == 200
    assert template_key(template_id) not in fake_redis.store
    assert (await client.get(f"/api/templates/{template_id}")).status_code == 404


async def test_cached_value_is_returned_verbatim(fake_redis):
    cache = TemplateCache(fake_redis, ttl=300)
    await fake_redis.set(template_key(1), json.dumps({"id": 1, "name": "stale"}))

    async def loader():
        raise AssertionError("loader must not run on a hit")

    assert await cache.get_or_load(template_key(1), loader) == {"id": 1, "name": "stale"}


async def test_cache_outage_falls_back_to_loader(fake_redis):
    cache = TemplateCache(fake_redis, ttl=300)
    fake_redis.down = True

    async def loader():
        return {"id": 1}

    assert await cache.get_or_load(template_key(1), loader) == {"id": 1}
    # Invalidation failures are logged, not raised
    await cache.invalidate(1)


async def test_cache_entries_expire_after_ttl(fake_redis):
    cache = TemplateCache(fake_redis, ttl=300)
    await cache.set(ALL_TEMPLATES_KEY, [])
    fake_redis.advance(301)
    assert await cache.get(ALL_TEMPLATES_KEY) is None
