"""Authorization boundary of the run controller.

The controller only asks ``has_permission(principal, action)``; policy is
entirely up to the configured authorizer.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, Optional
from omegaconf import DictConfig, OmegaConf

from run_manager.common.common import Action
from run_manager.common.serializable import YAMLSerializable


@dataclass(frozen=True)
class Principal:
    id: str
    role: str


SYSTEM = Principal(id="system", role="admin")


class Authorizer(YAMLSerializable, ABC):

    @abstractmethod
    def has_permission(self, principal: Principal, action: Action) -> bool:
        pass


@YAMLSerializable.register("AllowAll")
class AllowAll(Authorizer):

    def has_permission(self, principal: Principal, action: Action) -> bool:
        return True

    @classmethod
    def from_config(cls, config: DictConfig = None) -> "AllowAll":
        return cls()


DEFAULT_ROLES = {
    "admin": [action.value for action in Action],
    "developer": [
        Action.CREATE_RUN.value,
        Action.START_RUN.value,
        Action.PAUSE_RUN.value,
        Action.RESUME_RUN.value,
        Action.READ_RUN.value,
    ],
    "viewer": [Action.READ_RUN.value],
}


@YAMLSerializable.register("RoleAuthorizer")
class RoleAuthorizer(Authorizer):
    """Grants each role a fixed set of actions; unknown roles get nothing."""

    def __init__(self, roles: Optional[Dict[str, Iterable[str]]] = None):
        super().__init__()
        roles = DEFAULT_ROLES if roles is None else roles
        self.roles = {role: {Action(action) for action in actions}
                      for role, actions in roles.items()}

    def has_permission(self, principal: Principal, action: Action) -> bool:
        return Action(action) in self.roles.get(principal.role, ())

    @classmethod
    def from_config(cls, config: DictConfig = None) -> "RoleAuthorizer":
        roles = None
        if config is not None and config.get("roles", None) is not None:
            roles = OmegaConf.to_container(config.roles, resolve=True)
        return cls(roles)
