from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Union


class Role(str, Enum):
    OWNER = "OWNER"
    SECURITY = "SECURITY"
    HEADADMIN = "HEADADMIN"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    SHOP_OWNER = "SHOP_OWNER"
    SHOP_MAIN = "SHOP_MAIN"
    SHOP_STAFF = "SHOP_STAFF"
    USER = "USER"


class Capability(str, Enum):
    MANAGE_USERS = "manageUsers"
    MANAGE_SHOPS = "manageShops"
    MANAGE_COMPLAINTS = "manageComplaints"
    CREATE_ACCOUNTS = "createAccounts"
    BLOCK_USERS = "blockUsers"
    VIEW_ADMIN_PANEL = "viewAdminPanel"


# Область обращения: вся площадка или конкретный магазин
@dataclass(frozen=True)
class PlatformScope:
    pass


@dataclass(frozen=True)
class ShopScope:
    shop_id: int


Scope = Union[PlatformScope, ShopScope]

PLATFORM = PlatformScope()


_ALL = frozenset(Capability)

CAPABILITIES = {
    Role.OWNER: _ALL,
    Role.SECURITY: _ALL,
    Role.HEADADMIN: _ALL,
    Role.ADMIN: _ALL,
    Role.MODERATOR: frozenset({
        Capability.MANAGE_COMPLAINTS,
        Capability.BLOCK_USERS,
        Capability.VIEW_ADMIN_PANEL,
    }),
    Role.SHOP_OWNER: frozenset(),
    Role.SHOP_MAIN: frozenset(),
    Role.SHOP_STAFF: frozenset(),
    Role.USER: frozenset(),
}

# Ранг на уровне площадки. Роли магазинов и USER ранга не имеют.
RANKS = {
    Role.OWNER: 5,
    Role.SECURITY: 4,
    Role.HEADADMIN: 3,
    Role.ADMIN: 2,
    Role.MODERATOR: 1,
    Role.SHOP_OWNER: 0,
    Role.SHOP_MAIN: 0,
    Role.SHOP_STAFF: 0,
    Role.USER: 0,
}

FULL_ACCESS_ROLES = frozenset({Role.OWNER, Role.SECURITY})
ADMIN_ACCESS_ROLES = frozenset({Role.OWNER, Role.SECURITY, Role.HEADADMIN, Role.ADMIN})
SHOP_STAFF_ROLES = frozenset({Role.SHOP_OWNER, Role.SHOP_MAIN, Role.SHOP_STAFF})

ROLE_LABELS = {
    Role.OWNER: "Владелец площадки",
    Role.SECURITY: "Служба Безопасности",
    Role.HEADADMIN: "Вице-Админ",
    Role.ADMIN: "Админ",
    Role.MODERATOR: "Модератор",
    Role.SHOP_OWNER: "Владелец магазина",
    Role.SHOP_MAIN: "Управляющий магазина",
    Role.SHOP_STAFF: "Сотрудник магазина",
    Role.USER: "Пользователь",
}


def capabilities_of(role: Role) -> FrozenSet[Capability]:
    return CAPABILITIES[Role(role)]


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in capabilities_of(role)


def has_full_access(role: Role) -> bool:
    return Role(role) in FULL_ACCESS_ROLES


def has_admin_access(role: Role) -> bool:
    return Role(role) in ADMIN_ACCESS_ROLES


def is_shop_staff(role: Role) -> bool:
    return Role(role) in SHOP_STAFF_ROLES


def rank_of(role: Role) -> int:
    return RANKS[Role(role)]


def outranks(actor_role: Role, target_role: Role) -> bool:
    return rank_of(actor_role) > rank_of(target_role)


def role_label(role: Role) -> str:
    return ROLE_LABELS[Role(role)]


def can_act_on_ticket(actor_role: Role, actor_shop_ids: Iterable[int], scope: Scope) -> bool:
    """Может ли сотрудник видеть обращение и работать с ним.

    Администрация площадки видит любые обращения. Сотрудник магазина видит
    только обращения в магазины, где он числится.
    """
    if has_admin_access(actor_role):
        return True
    if isinstance(scope, ShopScope):
        return is_shop_staff(actor_role) and scope.shop_id in set(actor_shop_ids)
    return False


def acting_shop_ids(actor_role: Role, actor_shop_ids: Iterable[int]) -> FrozenSet[int]:
    # Магазины, за которые пользователь отвечает как сотрудник: жалобы, чаты, счетчики
    shop_ids = frozenset(actor_shop_ids)
    return frozenset(
        shop_id for shop_id in shop_ids
        if can_act_on_ticket(actor_role, shop_ids, ShopScope(shop_id))
    )


@dataclass(frozen=True)
class Principal:
    """Вызывающий пользователь: id, роль и магазины, где он числится в штате."""
    user_id: int
    role: Role
    shop_ids: FrozenSet[int] = field(default_factory=frozenset)
