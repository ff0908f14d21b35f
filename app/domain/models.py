from __future__ import annotations

from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel


def now_utc() -> datetime:
    return datetime.now(UTC)


class Status(StrEnum):
    NORMAL = "0"
    DISABLED = "1"


class DelFlag(StrEnum):
    PRESENT = "0"
    DELETED = "2"


class DataScope(StrEnum):
    ALL = "1"
    CUSTOM = "2"
    DEPT = "3"
    DEPT_AND_CHILD = "4"
    SELF = "5"


class MenuType(StrEnum):
    DIRECTORY = "M"
    MENU = "C"
    BUTTON = "F"


class BusinessType(IntEnum):
    OTHER = 0
    INSERT = 1
    UPDATE = 2
    DELETE = 3
    GRANT = 4
    EXPORT = 5
    IMPORT = 6
    FORCE = 7
    CLEAN = 9


class Dept(SQLModel, table=True):
    __tablename__ = "sys_dept"

    dept_id: int | None = Field(default=None, primary_key=True)
    parent_id: int = Field(default=0, index=True)
    ancestors: str = Field(default="")
    dept_name: str = Field(default="")
    order_num: int = Field(default=0)
    leader: str | None = None
    phone: str | None = None
    email: str | None = None
    status: str = Field(default=Status.NORMAL)
    del_flag: str = Field(default=DelFlag.PRESENT)
    create_by: str | None = None
    create_time: datetime = Field(default_factory=now_utc)
    update_by: str | None = None
    update_time: datetime | None = None


class User(SQLModel, table=True):
    __tablename__ = "sys_user"

    user_id: int | None = Field(default=None, primary_key=True)
    dept_id: int | None = Field(default=None, index=True)
    user_name: str = Field(index=True, unique=True)
    nick_name: str = Field(default="")
    user_type: str = Field(default="00")
    email: str | None = None
    phonenumber: str | None = None
    sex: str = Field(default="0")
    avatar: str | None = None
    password: str
    status: str = Field(default=Status.NORMAL)
    del_flag: str = Field(default=DelFlag.PRESENT)
    login_ip: str | None = None
    login_date: datetime | None = None
    create_by: str | None = None
    create_time: datetime = Field(default_factory=now_utc)
    update_by: str | None = None
    update_time: datetime | None = None
    remark: str | None = None


class Role(SQLModel, table=True):
    __tablename__ = "sys_role"

    role_id: int | None = Field(default=None, primary_key=True)
    role_name: str = Field(index=True)
    role_key: str = Field(index=True)
    role_sort: int = Field(default=0)
    data_scope: str = Field(default=DataScope.ALL)
    menu_check_strictly: bool = Field(default=True)
    dept_check_strictly: bool = Field(default=True)
    status: str = Field(default=Status.NORMAL)
    del_flag: str = Field(default=DelFlag.PRESENT)
    create_by: str | None = None
    create_time: datetime = Field(default_factory=now_utc)
    update_by: str | None = None
    update_time: datetime | None = None
    remark: str | None = None


class Menu(SQLModel, table=True):
    __tablename__ = "sys_menu"

    menu_id: int | None = Field(default=None, primary_key=True)
    menu_name: str
    parent_id: int = Field(default=0, index=True)
    order_num: int = Field(default=0)
    path: str = Field(default="")
    component: str | None = None
    query: str | None = None
    route_name: str | None = None
    is_frame: int = Field(default=1)
    is_cache: int = Field(default=0)
    menu_type: str = Field(default=MenuType.DIRECTORY)
    visible: str = Field(default="0")
    status: str = Field(default=Status.NORMAL)
    perms: str | None = None
    icon: str = Field(default="#")
    create_by: str | None = None
    create_time: datetime = Field(default_factory=now_utc)
    update_by: str | None = None
    update_time: datetime | None = None
    remark: str | None = None


class Post(SQLModel, table=True):
    __tablename__ = "sys_post"

    post_id: int | None = Field(default=None, primary_key=True)
    post_code: str = Field(index=True, unique=True)
    post_name: str
    post_sort: int = Field(default=0)
    status: str = Field(default=Status.NORMAL)
    create_by: str | None = None
    create_time: datetime = Field(default_factory=now_utc)
    update_by: str | None = None
    update_time: datetime | None = None
    remark: str | None = None


class UserRole(SQLModel, table=True):
    __tablename__ = "sys_user_role"

    user_id: int = Field(primary_key=True)
    role_id: int = Field(primary_key=True, index=True)


class UserPost(SQLModel, table=True):
    __tablename__ = "sys_user_post"

    user_id: int = Field(primary_key=True)
    post_id: int = Field(primary_key=True)


class RoleMenu(SQLModel, table=True):
    __tablename__ = "sys_role_menu"

    role_id: int = Field(primary_key=True)
    menu_id: int = Field(primary_key=True, index=True)


class RoleDept(SQLModel, table=True):
    __tablename__ = "sys_role_dept"

    role_id: int = Field(primary_key=True)
    dept_id: int = Field(primary_key=True)


class OperLog(SQLModel, table=True):
    __tablename__ = "sys_oper_log"

    oper_id: int | None = Field(default=None, primary_key=True)
    title: str = Field(default="")
    business_type: int = Field(default=BusinessType.OTHER)
    method: str = Field(default="")
    request_method: str = Field(default="")
    operator_type: int = Field(default=1)
    oper_name: str = Field(default="", index=True)
    dept_name: str | None = None
    oper_url: str = Field(default="")
    oper_ip: str = Field(default="")
    oper_location: str = Field(default="")
    oper_param: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    json_result: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    status: int = Field(default=0)
    error_msg: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    cost_time: int = Field(default=0)
    oper_time: datetime = Field(default_factory=now_utc, index=True)


# Session record and token claims.


class RoleSnapshot(BaseModel):
    role_id: int
    role_key: str
    role_name: str
    data_scope: str = DataScope.ALL
    status: str = Status.NORMAL


class UserProfile(BaseModel):
    user_id: int
    dept_id: int | None = None
    dept_name: str | None = None
    user_name: str
    nick_name: str = ""
    email: str | None = None
    phonenumber: str | None = None
    sex: str = "0"
    avatar: str | None = None
    roles: list[RoleSnapshot] = PydanticField(default_factory=list)


class LoginUser(BaseModel):
    token: str = ""
    user_id: int
    dept_id: int | None = None
    user_name: str
    login_time: int = 0
    expire_time: int = 0
    ipaddr: str = ""
    browser: str = "Unknown"
    os: str = "Unknown"
    permissions: list[str] = PydanticField(default_factory=list)
    user: UserProfile

    @property
    def role_keys(self) -> list[str]:
        return [item.role_key for item in self.user.roles if item.status == Status.NORMAL]


class TokenClaims(BaseModel):
    model_config = ConfigDict(extra="forbid")

    login_user_key: str = PydanticField(min_length=1)
    iat: int
    exp: int


# API read/write models.


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PageResult(BaseModel):
    total: int
    rows: list[Any]


class LoginRequest(BaseModel):
    user_name: str = PydanticField(min_length=1)
    password: str = PydanticField(min_length=1)
    code: str | None = None
    uuid: str | None = None


class TokenResponse(BaseModel):
    token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserProfile


class UserInfoResponse(BaseModel):
    user: UserProfile
    roles: list[str]
    permissions: list[str]


class CaptchaResponse(BaseModel):
    captcha_enabled: bool
    uuid: str | None = None
    img: str | None = None


class RoleCreate(BaseModel):
    role_name: str = PydanticField(min_length=1, max_length=30)
    role_key: str = PydanticField(min_length=1, max_length=100, pattern=r"^[^,\s]+$")
    role_sort: int = 0
    data_scope: DataScope = DataScope.ALL
    menu_check_strictly: bool = True
    dept_check_strictly: bool = True
    status: Status = Status.NORMAL
    menu_ids: list[int] = PydanticField(default_factory=list)
    dept_ids: list[int] = PydanticField(default_factory=list)
    remark: str | None = None


class RoleUpdate(RoleCreate):
    role_id: int


class RoleStatusUpdate(BaseModel):
    role_id: int
    status: Status


class RoleDataScopeUpdate(BaseModel):
    role_id: int
    data_scope: DataScope
    dept_ids: list[int] = PydanticField(default_factory=list)
    dept_check_strictly: bool = True


class RoleRead(ORMReadModel):
    role_id: int
    role_name: str
    role_key: str
    role_sort: int
    data_scope: str
    menu_check_strictly: bool
    dept_check_strictly: bool
    status: str
    create_time: datetime
    remark: str | None = None


class RoleOptionRead(RoleRead):
    flag: bool = False


class AuthUserCancel(BaseModel):
    user_id: int
    role_id: int


class AuthUserBatch(BaseModel):
    role_id: int
    user_ids: list[int]


class UserCreate(BaseModel):
    user_name: str = PydanticField(min_length=2, max_length=30)
    nick_name: str = PydanticField(min_length=1, max_length=30)
    password: str = PydanticField(min_length=5, max_length=20)
    dept_id: int | None = None
    email: str | None = None
    phonenumber: str | None = None
    sex: str = "0"
    status: Status = Status.NORMAL
    role_ids: list[int] = PydanticField(default_factory=list)
    post_ids: list[int] = PydanticField(default_factory=list)
    remark: str | None = None


class UserUpdate(BaseModel):
    user_id: int
    nick_name: str = PydanticField(min_length=1, max_length=30)
    dept_id: int | None = None
    email: str | None = None
    phonenumber: str | None = None
    sex: str = "0"
    status: Status = Status.NORMAL
    role_ids: list[int] = PydanticField(default_factory=list)
    post_ids: list[int] = PydanticField(default_factory=list)
    remark: str | None = None


class UserResetPassword(BaseModel):
    user_id: int
    password: str = PydanticField(min_length=5, max_length=20)


class UserStatusUpdate(BaseModel):
    user_id: int
    status: Status


class UserProfileUpdate(BaseModel):
    nick_name: str = PydanticField(min_length=1, max_length=30)
    email: str | None = None
    phonenumber: str | None = None
    sex: str = "0"


class UserPasswordUpdate(BaseModel):
    old_password: str = PydanticField(min_length=1)
    new_password: str = PydanticField(min_length=5, max_length=20)


class UserAuthRole(BaseModel):
    user_id: int
    role_ids: list[int] = PydanticField(default_factory=list)


class UserRead(ORMReadModel):
    user_id: int
    dept_id: int | None = None
    user_name: str
    nick_name: str
    email: str | None = None
    phonenumber: str | None = None
    sex: str
    avatar: str | None = None
    status: str
    login_ip: str | None = None
    login_date: datetime | None = None
    create_time: datetime
    remark: str | None = None


class UserDetailRead(BaseModel):
    user: UserRead | None = None
    role_ids: list[int] = PydanticField(default_factory=list)
    post_ids: list[int] = PydanticField(default_factory=list)
    roles: list[RoleRead] = PydanticField(default_factory=list)
    posts: list[PostRead] = PydanticField(default_factory=list)


class UserAuthRoleRead(BaseModel):
    user: UserRead
    roles: list[RoleOptionRead]


class DeptCreate(BaseModel):
    parent_id: int = 0
    dept_name: str = PydanticField(min_length=1, max_length=30)
    order_num: int = 0
    leader: str | None = None
    phone: str | None = None
    email: str | None = None
    status: Status = Status.NORMAL


class DeptUpdate(DeptCreate):
    dept_id: int


class DeptRead(ORMReadModel):
    dept_id: int
    parent_id: int
    ancestors: str
    dept_name: str
    order_num: int
    leader: str | None = None
    phone: str | None = None
    email: str | None = None
    status: str
    create_time: datetime


class TreeNode(BaseModel):
    id: int
    label: str
    disabled: bool = False
    children: list[TreeNode] = PydanticField(default_factory=list)


class RoleDeptTreeRead(BaseModel):
    checked_keys: list[int]
    depts: list[TreeNode]


class RoleMenuTreeRead(BaseModel):
    checked_keys: list[int]
    menus: list[TreeNode]


class MenuCreate(BaseModel):
    menu_name: str = PydanticField(min_length=1, max_length=50)
    parent_id: int = 0
    order_num: int = 0
    path: str = ""
    component: str | None = None
    query: str | None = None
    route_name: str | None = None
    is_frame: int = 1
    is_cache: int = 0
    menu_type: MenuType = MenuType.DIRECTORY
    visible: str = "0"
    status: Status = Status.NORMAL
    perms: str | None = None
    icon: str = "#"
    remark: str | None = None


class MenuUpdate(MenuCreate):
    menu_id: int


class MenuRead(ORMReadModel):
    menu_id: int
    menu_name: str
    parent_id: int
    order_num: int
    path: str
    component: str | None = None
    route_name: str | None = None
    is_frame: int
    is_cache: int
    menu_type: str
    visible: str
    status: str
    perms: str | None = None
    icon: str
    create_time: datetime


class RouterMeta(BaseModel):
    title: str
    icon: str
    no_cache: bool


class RouterRead(BaseModel):
    name: str
    path: str
    hidden: bool
    component: str
    meta: RouterMeta
    children: list[RouterRead] = PydanticField(default_factory=list)


class PostCreate(BaseModel):
    post_code: str = PydanticField(min_length=1, max_length=64)
    post_name: str = PydanticField(min_length=1, max_length=50)
    post_sort: int = 0
    status: Status = Status.NORMAL
    remark: str | None = None


class PostUpdate(PostCreate):
    post_id: int


class PostRead(ORMReadModel):
    post_id: int
    post_code: str
    post_name: str
    post_sort: int
    status: str
    create_time: datetime
    remark: str | None = None


class OnlineSessionRead(BaseModel):
    token_id: str
    user_name: str
    dept_id: int | None = None
    ipaddr: str
    browser: str
    os: str
    login_time: int


class OperLogRead(ORMReadModel):
    oper_id: int
    title: str
    business_type: int
    method: str
    request_method: str
    oper_name: str
    dept_name: str | None = None
    oper_url: str
    oper_ip: str
    oper_param: str | None = None
    status: int
    error_msg: str | None = None
    cost_time: int
    oper_time: datetime


UserDetailRead.model_rebuild()
