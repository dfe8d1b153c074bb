import os
import json
import logging
from elasticsearch import helpers
from upcycle_search.config import settings
from upcycle_search.tools.es_client import ensure_indices, get_es_client


logging.basicConfig(level=logging.INFO)

SEEDS_DIR = os.getenv("SEEDS_DIR", "seeds")


def load(name: str) -> list[dict]:
    with open(os.path.join(SEEDS_DIR, name), "r", encoding="utf-8") as f:
        return json.load(f)


def upsert_actions(index: str, docs: list[dict]) -> list[dict]:
    actions = []
    for d in docs:
        doc = dict(d)
        doc_id = doc.pop("id")
        if "email" in doc:
            doc["email"] = doc["email"].strip().lower()
        actions.append(
            {
                "_op_type": "update",
                "_index": index,
                "_id": doc_id,
                "doc": doc,
                "doc_as_upsert": True,
            }
        )
    return actions


es = get_es_client()
ensure_indices(es)

users = load("users.json")
materials = load("materials.json")
logging.info(
    "Indexing %d users into %s and %d materials into %s.",
    len(users),
    settings.es_users_index,
    len(materials),
    settings.es_materials_index,
)

ok, _ = helpers.bulk(es, upsert_actions(settings.es_users_index, users))
logging.info("Upserted %d users into %s", ok, settings.es_users_index)
ok, _ = helpers.bulk(
    es, upsert_actions(settings.es_materials_index, materials), refresh=True
)
logging.info("Upserted %d materials into %s", ok, settings.es_materials_index)
