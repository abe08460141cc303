from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class ManageUsersIn(BaseModel):
    # accepts the camelCase keys the admin UI sends
    model_config = ConfigDict(populate_by_name=True)

    action: str
    user_id: Optional[str] = Field(None, alias='userId')
    user_data: Optional[Dict[str, Any]] = Field(None, alias='userData')
