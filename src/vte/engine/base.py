from __future__ import annotations

import pydantic
from pydantic import ConfigDict

from . import utils


class BaseModel(pydantic.BaseModel):
    model_config = ConfigDict(extra="forbid")

    def dump(self, as_json=True) -> str | dict:
        return utils.dump(self, as_json)


class FrozenModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
