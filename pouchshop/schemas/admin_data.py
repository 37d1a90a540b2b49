"""
Pydantic schemas for the admin-data proxy
"""

from typing import Any, Dict, List, Literal, Optional, Union, get_args
from pydantic import BaseModel

ALLOWED_TABLES = ("products", "user_roles", "pages", "page_blocks", "menu_items", "page_metadata")

AdminDataOperation = Literal["insert", "update", "delete", "select", "rpc"]

RpcFunction = Literal[
    "get_user_by_email",
    "list_users",
    "assign_admin_role",
    "create_admin_user",
    "update_user_password",
    "remove_admin_role",
    "list_admin_users",
]

ADMIN_DATA_OPERATIONS = get_args(AdminDataOperation)
RPC_FUNCTIONS = get_args(RpcFunction)


class AdminDataRequest(BaseModel):
    operation: AdminDataOperation
    table: Optional[str] = None
    data: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]] = None
    match: Optional[Dict[str, Any]] = None


class RpcCall(BaseModel):
    """data payload of an rpc operation"""
    function: RpcFunction
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = None
    user_id: Optional[int] = None
