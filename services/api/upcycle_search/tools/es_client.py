import logging
import time

from elasticsearch import Elasticsearch
from elastic_transport import ConnectionError

from upcycle_search.config import settings

logger = logging.getLogger(__name__)

_es_client = None  # process-wide client, created lazily


def get_es_client():
    global _es_client
    if _es_client is None:
        attempts = settings.es_connect_retries
        delay = settings.es_retry_delay_seconds
        for i in range(attempts):
            try:
                _es_client = Elasticsearch(settings.es_host)
                _es_client.info()
                logger.info("Connected to Elasticsearch after %d attempt(s)", i + 1)
                break
            except ConnectionError as e:
                logger.warning(
                    "Attempt %d/%d: Elasticsearch unreachable at %s, retrying in %ss (%s)",
                    i + 1,
                    attempts,
                    settings.es_host,
                    delay,
                    e,
                )
                time.sleep(delay)
        else:
            raise ConnectionError(
                "Failed to connect to Elasticsearch after multiple retries."
            )
    return _es_client


MATERIALS_MAPPING = {
    "properties": {
        "title": {"type": "text"},
        "category": {"type": "keyword"},
        "description": {"type": "text"},
        "quantity": {"type": "keyword"},
        "price": {"type": "float"},
        "priceUnit": {"type": "keyword"},
        "images": {"type": "object", "enabled": False},
        "providerId": {"type": "keyword"},
        # GeoJSON point, coordinates stored as [lng, lat]
        "location": {"type": "geo_point"},
        "status": {"type": "keyword"},
        "createdAt": {"type": "date"},
    }
}

USERS_MAPPING = {
    "properties": {
        "name": {"type": "text"},
        "email": {"type": "keyword"},
        "role": {"type": "keyword"},
        "organization": {"type": "text"},
        "location": {"type": "geo_point"},
        "averageRating": {"type": "float"},
        "totalReviews": {"type": "integer"},
        "createdAt": {"type": "date"},
    }
}


def ensure_indices(es=None):
    # Called on startup by the API and by the seed script
    es = es if es is not None else get_es_client()
    indices = es.indices

    def create_index(name: str, mapping: dict):
        if not indices.exists(index=name):
            logger.info("Creating index %s", name)
            indices.create(index=name, mappings=mapping)

    create_index(settings.es_materials_index, MATERIALS_MAPPING)
    create_index(settings.es_users_index, USERS_MAPPING)
