"""Auxiliary raw fragment schemas"""

from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RawTimestamp = Union[str, int, float]
RawKey = Union[str, int]


class AuxFragments(BaseModel):
    """Best-effort enrichment supplied next to a primary raw export.

    ``submissions_map`` is keyed by assignment id, then by learner key (id,
    username or email), and holds a raw submission timestamp.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    submissions_map: Dict[RawKey, Dict[RawKey, Optional[RawTimestamp]]] = Field(default_factory=dict, alias="submissionsMap")
