"""
MongoDB implementation of IdentityStore (async pymongo).

Collections:
- oauth-accounts: one document per (user_id, provider_id)
- api-keys: looked up by token_hash on every gateway request

Database errors propagate; the gateway must not mistake an outage for an
invalid key.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING
from pymongo.asynchronous.database import AsyncDatabase

from schemas.models.api_key import ApiKeyDoc
from schemas.models.oauth_account import OAuthAccountDoc
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)

ACCOUNTS_COLLECTION = "oauth-accounts"
API_KEYS_COLLECTION = "api-keys"


def _object_id(value: object) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class MongoIdentityStore:
    def __init__(self, db: AsyncDatabase) -> None:
        self._accounts = db[ACCOUNTS_COLLECTION]
        self._keys = db[API_KEYS_COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._accounts.create_index(
            [("user_id", ASCENDING), ("provider_id", ASCENDING)], unique=True
        )
        await self._keys.create_index([("token_hash", ASCENDING)], unique=True)
        await self._keys.create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])
        log.info("mongo_indexes_ensured")

    # ── Linked accounts ──────────────────────────────────────────────────────

    async def find_account(
        self, user_id: str, provider_id: str
    ) -> Optional[OAuthAccountDoc]:
        doc = await self._accounts.find_one(
            {"user_id": user_id, "provider_id": provider_id}
        )
        return OAuthAccountDoc.from_mongo(doc)

    async def update_account_tokens(
        self,
        account_id: object,
        access_token: str,
        expires_at: datetime,
        refresh_token: Optional[str] = None,
    ) -> None:
        updates: dict = {
            "access_token": access_token,
            "access_token_expires_at": expires_at,
            "updated_at": utcnow(),
        }
        if refresh_token:
            updates["refresh_token"] = refresh_token
        await self._accounts.update_one({"_id": account_id}, {"$set": updates})

    # ── API keys ─────────────────────────────────────────────────────────────

    async def find_api_key_by_hash(self, token_hash: str) -> Optional[ApiKeyDoc]:
        doc = await self._keys.find_one({"token_hash": token_hash})
        return ApiKeyDoc.from_mongo(doc)

    async def insert_api_key(self, doc: ApiKeyDoc) -> ApiKeyDoc:
        result = await self._keys.insert_one(doc.to_mongo())
        return doc.model_copy(update={"id": result.inserted_id})

    async def list_api_keys(self, user_id: str) -> list[ApiKeyDoc]:
        cursor = self._keys.find({"user_id": user_id}).sort("created_at", ASCENDING)
        return [ApiKeyDoc.from_mongo(doc) async for doc in cursor]

    async def count_api_keys(self, user_id: str) -> int:
        return await self._keys.count_documents({"user_id": user_id})

    async def delete_api_key(self, user_id: str, key_id: str) -> bool:
        oid = _object_id(key_id)
        if oid is None:
            return False
        result = await self._keys.delete_one({"_id": oid, "user_id": user_id})
        return result.deleted_count == 1

    async def set_api_key_enabled(self, user_id: str, key_id: str, enabled: bool) -> bool:
        oid = _object_id(key_id)
        if oid is None:
            return False
        result = await self._keys.update_one(
            {"_id": oid, "user_id": user_id}, {"$set": {"enabled": enabled}}
        )
        return result.matched_count == 1
