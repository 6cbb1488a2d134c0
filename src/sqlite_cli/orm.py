"""
极简 ORM / query builder。

用法：

    User = orm.define("users", {
        "id": orm.integer(primary_key=True, auto_increment=True),
        "name": orm.text(not_null=True),
    })
    User.connect(":memory:")
    uid = User.create({"name": "Ada"})
    User.query().select(["name"]).where("id = 1").limit(1).execute()

说明：
- 所有操作都经由 `Database.sql()` / CRUD 方法，不直接接触子进程；
- 条件（where/condition）是原样拼接的 SQL 片段，调用方负责转义（见 `utils.escape_sql_string`）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlite_cli.config.loader import ConfigLike
from sqlite_cli.core.decoder import Row, Rows
from sqlite_cli.core.errors import ModelError, ModelNotConnectedError
from sqlite_cli.database import Database
from sqlite_cli.utils import join_fields, sql_literal

_NOT_CONNECTED_MESSAGE = "Database not connected. Call connect(db_or_path) first."


@dataclass(frozen=True)
class FieldOptions:
    """列约束选项。"""

    primary_key: bool = False
    auto_increment: bool = False
    not_null: bool = False
    unique: bool = False
    default: Any = None


@dataclass(frozen=True)
class FieldDefinition:
    """列定义：SQLite 类型 + 约束选项。"""

    type: str
    options: FieldOptions = field(default_factory=FieldOptions)

    def column_sql(self, name: str) -> str:
        """渲染 `CREATE TABLE` 中的一列定义。"""

        parts = [name, self.type]
        if self.options.primary_key:
            parts.append("PRIMARY KEY")
        if self.options.auto_increment:
            parts.append("AUTOINCREMENT")
        if self.options.not_null:
            parts.append("NOT NULL")
        if self.options.unique:
            parts.append("UNIQUE")
        if self.options.default is not None:
            parts.append(f"DEFAULT {sql_literal(self.options.default)}")
        return " ".join(parts)


def define_field(type_name: str, **options: Any) -> FieldDefinition:
    """按类型名与选项创建列定义。"""

    return FieldDefinition(type=type_name, options=FieldOptions(**options))


def integer(**options: Any) -> FieldDefinition:
    """INTEGER 列。"""

    return define_field("INTEGER", **options)


def text(**options: Any) -> FieldDefinition:
    """TEXT 列。"""

    return define_field("TEXT", **options)


def real(**options: Any) -> FieldDefinition:
    """REAL 列。"""

    return define_field("REAL", **options)


class Query:
    """
    链式 SELECT 构造器。

    说明：
    - `select/where/order_by/limit` 返回自身以便链式调用；
    - `execute()` 通过 `Database.sql()` 执行，无行时返回 None。
    """

    def __init__(self, model: "Model") -> None:
        """创建针对某个 model 的查询。"""

        self._model = model
        self._select = "*"
        self._where: Optional[str] = None
        self._order_by: Optional[str] = None
        self._limit: Optional[int] = None

    def select(self, fields: Union[str, Sequence[str]]) -> "Query":
        """设置查询列。"""

        self._select = join_fields(fields)
        return self

    def where(self, condition: str) -> "Query":
        """设置 WHERE 条件。"""

        self._where = condition
        return self

    def order_by(self, fields: Union[str, Sequence[str]]) -> "Query":
        """设置 ORDER BY（例如 `"age DESC"`）。"""

        self._order_by = join_fields(fields)
        return self

    def limit(self, n: int) -> "Query":
        """设置 LIMIT。"""

        self._limit = int(n)
        return self

    def to_sql(self) -> str:
        """渲染 SQL（不含结束符）。"""

        command = f"SELECT {self._select} FROM {self._model.name}"
        if self._where:
            command += f" WHERE {self._where}"
        if self._order_by:
            command += f" ORDER BY {self._order_by}"
        if self._limit is not None:
            command += f" LIMIT {self._limit}"
        return command

    def execute(self) -> Optional[Rows]:
        """执行查询。"""

        return self._model.require_db().sql(self.to_sql())  # type: ignore[return-value]


class Model:
    """一张表的 model：schema + 已连接的 Database。"""

    def __init__(self, name: str, schema: Mapping[str, FieldDefinition]) -> None:
        """
        创建未连接的 model。

        参数：
        - name：表名
        - schema：列名 → `FieldDefinition`（保持定义顺序）
        """

        self.name = name
        self.schema: Dict[str, FieldDefinition] = dict(schema)
        self.db: Optional[Database] = None

    def connect(self, db_or_path: Union[Database, str], config: ConfigLike = None) -> "Model":
        """
        连接到已有 Database，或按路径打开一个新的；随后确保表存在。

        参数：
        - db_or_path：`Database` 实例或数据库路径
        - config：按路径打开时使用的配置
        """

        if isinstance(db_or_path, Database):
            self.db = db_or_path
        else:
            self.db = Database.open(db_or_path, config)
        self.create_table_if_not_exists()
        return self

    def require_db(self) -> Database:
        """
        返回已连接的 Database。

        异常：
        - ModelNotConnectedError：尚未调用 `connect()`
        """

        if self.db is None:
            raise ModelNotConnectedError(_NOT_CONNECTED_MESSAGE, details={"model": self.name})
        return self.db

    def create_table_if_not_exists(self) -> None:
        """按 schema 执行 `CREATE TABLE IF NOT EXISTS`。"""

        columns = ", ".join(definition.column_sql(name) for name, definition in self.schema.items())
        self.require_db().sql(f"CREATE TABLE IF NOT EXISTS {self.name} ({columns})")

    def get_primary_keys(self) -> List[str]:
        """返回声明为主键的列名。"""

        return [name for name, definition in self.schema.items() if definition.options.primary_key]

    def create(self, data: Mapping[str, Any]) -> Optional[int]:
        """插入一行，返回新行 rowid。"""

        return self.require_db().insert(self.name, data)

    def find(self, condition: Optional[str] = None) -> Optional[Rows]:
        """按条件查询；无行时为 None。"""

        return self.require_db().select(self.name, condition)

    def find_one(self, condition: Optional[str] = None) -> Optional[Row]:
        """返回第一条匹配的行或 None。"""

        rows = self.find(condition)
        return rows[0] if rows else None

    def find_by_id(self, id_value: Any) -> Optional[Row]:
        """
        按主键查询一行。

        异常：
        - ModelError(MODEL_PRIMARY_KEY)：model 没有主键或有多个主键
        """

        primary_keys = self.get_primary_keys()
        if len(primary_keys) != 1:
            raise ModelError(
                "Model must have exactly one primary key.",
                code="MODEL_PRIMARY_KEY",
                details={"model": self.name, "primary_keys": primary_keys},
            )
        return self.find_one(f"{primary_keys[0]} = {sql_literal(id_value)}")

    def all(self) -> Optional[Rows]:
        """返回全部行。"""

        return self.find()

    def update(self, condition: Optional[str], data: Mapping[str, Any]) -> None:
        """按条件更新。"""

        self.require_db().update(self.name, data, condition)

    def delete(self, condition: Optional[str] = None) -> None:
        """按条件删除。"""

        self.require_db().delete(self.name, condition)

    def query(self) -> Query:
        """开始一个链式查询。"""

        self.require_db()
        return Query(self)


def define(name: str, schema: Mapping[str, FieldDefinition]) -> Model:
    """定义一个未连接的 model。"""

    return Model(name, schema)
