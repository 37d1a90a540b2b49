"""
Generic admin-data proxy: whitelisted table passthrough plus user-management RPCs
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import DateTime, inspect
from sqlalchemy.orm import Session

from pouchshop.database import Base
from pouchshop.models.catalog import MenuItem, Page, PageBlock, PageMetadata, Product
from pouchshop.models.user import User, UserRole
from pouchshop.schemas.admin_data import ALLOWED_TABLES, AdminDataRequest, RpcCall
from pouchshop.schemas.user import AdminUserCreate
from pouchshop.services.user_service import UserService
from pouchshop.utils.error_handler import (
    DatabaseManager,
    Forbidden,
    NotFound,
    ValidationFailed,
    first_validation_error,
)

logger = logging.getLogger(__name__)

TABLE_MODELS = {
    "products": Product,
    "user_roles": UserRole,
    "pages": Page,
    "page_blocks": PageBlock,
    "menu_items": MenuItem,
    "page_metadata": PageMetadata,
}


def row_to_dict(row: Base) -> Dict[str, Any]:
    return {column.key: getattr(row, column.key) for column in inspect(row).mapper.column_attrs}


def _user_summary(user: User) -> Dict[str, Any]:
    return {"id": user.id, "email": user.email}


class AdminDataService:
    """Executes one admin-data request"""

    def __init__(self, db: Session):
        self.db = db
        self.user_service = UserService(db)

    async def execute(self, request: AdminDataRequest) -> Any:
        if request.operation == "rpc":
            return await self.rpc(request.data)

        model = self._model_for(request.table)
        if request.operation == "insert":
            return self.insert(model, request.data)
        elif request.operation == "update":
            return self.update(model, request.data, request.match)
        elif request.operation == "delete":
            return self.delete(model, request.match)
        else:
            return self.select(model, request.match)

    def _model_for(self, table: Optional[str]):
        if not table or table not in ALLOWED_TABLES:
            raise Forbidden(f"Table '{table}' is not allowed or missing")
        return TABLE_MODELS[table]

    def _coerce_values(self, model, values: Dict[str, Any]) -> Dict[str, Any]:
        columns = model.__table__.columns
        coerced = {}
        for key, value in values.items():
            if key not in columns:
                raise ValidationFailed(f"Unknown column '{key}' for table '{model.__tablename__}'")
            if isinstance(value, str) and isinstance(columns[key].type, DateTime):
                try:
                    value = datetime.fromisoformat(value.replace("Z", "+00:00"))
                except ValueError:
                    raise ValidationFailed(f"Invalid datetime for column '{key}'")
            coerced[key] = value
        return coerced

    def _matching(self, model, match: Dict[str, Any]):
        return self.db.query(model).filter_by(**self._coerce_values(model, match))

    def insert(self, model, data) -> List[Dict[str, Any]]:
        if not data:
            raise ValidationFailed("Missing data for insert")
        records = data if isinstance(data, list) else [data]
        rows = [model(**self._coerce_values(model, record)) for record in records]
        with DatabaseManager(self.db):
            self.db.add_all(rows)
        for row in rows:
            self.db.refresh(row)
        logger.info(f"admin-data insert into {model.__tablename__}: {len(rows)} rows")
        return [row_to_dict(row) for row in rows]

    def update(self, model, data, match) -> List[Dict[str, Any]]:
        if not data or not match or isinstance(data, list):
            raise ValidationFailed("Missing data or match criteria for update")
        values = self._coerce_values(model, data)
        rows = self._matching(model, match).all()
        with DatabaseManager(self.db):
            for row in rows:
                for key, value in values.items():
                    setattr(row, key, value)
        for row in rows:
            self.db.refresh(row)
        logger.info(f"admin-data update on {model.__tablename__}: {len(rows)} rows")
        return [row_to_dict(row) for row in rows]

    def delete(self, model, match) -> List[Dict[str, Any]]:
        if not match:
            raise ValidationFailed("Missing match criteria for delete")
        rows = self._matching(model, match).all()
        deleted = [row_to_dict(row) for row in rows]
        with DatabaseManager(self.db):
            for row in rows:
                self.db.delete(row)
        logger.info(f"admin-data delete on {model.__tablename__}: {len(rows)} rows")
        return deleted

    def select(self, model, match) -> List[Dict[str, Any]]:
        query = self._matching(model, match) if match else self.db.query(model)
        return [row_to_dict(row) for row in query.order_by(model.id).all()]

    async def rpc(self, data) -> Any:
        if not isinstance(data, dict):
            raise ValidationFailed("Unknown RPC function")
        try:
            call = RpcCall.model_validate(data)
        except ValidationError:
            raise ValidationFailed("Unknown RPC function")

        if call.function == "get_user_by_email":
            user = await self.user_service.get_user_by_email(self._require(call.email, "email"))
            return _user_summary(user) if user else None

        elif call.function == "list_users":
            users = await self.user_service.list_users()
            return [{**_user_summary(u), "created_at": u.created_at} for u in users]

        elif call.function == "assign_admin_role":
            user = await self.user_service.get_user_by_email(self._require(call.email, "email"))
            if not user:
                raise NotFound(f"User with email '{call.email}' not found")
            role = await self.user_service.assign_role(user, "admin")
            return {"user": _user_summary(user), "role": [row_to_dict(role)]}

        elif call.function == "create_admin_user":
            try:
                payload = AdminUserCreate(
                    email=self._require(call.email, "email"),
                    password=self._require(call.password, "password"),
                    full_name=call.full_name,
                )
            except ValidationError as e:
                raise ValidationFailed(first_validation_error(e))
            user = await self.user_service.create_user(payload, admin=True)
            return {"user": _user_summary(user), "role": [row_to_dict(r) for r in user.roles]}

        elif call.function == "update_user_password":
            user_id = self._require(call.user_id, "user_id")
            password = self._require(call.password, "password")
            if len(password) < 8:
                raise ValidationFailed("Password must be at least 8 characters long")
            user = await self.user_service.set_password(user_id, password)
            return {"user": _user_summary(user), "success": True}

        elif call.function == "remove_admin_role":
            await self.user_service.remove_role(self._require(call.user_id, "user_id"), "admin")
            return {"success": True}

        else:
            users = await self.user_service.list_admin_users()
            return [
                {**_user_summary(u), "created_at": u.created_at, "full_name": u.full_name}
                for u in users
            ]

    @staticmethod
    def _require(value, name: str):
        if value is None or value == "":
            raise ValidationFailed(f"Missing {name}")
        return value

