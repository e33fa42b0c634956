"""
笔记树引擎

对有序森林（List[TreeNode]）的纯函数操作：查找、插入、更新、删除、移动、排序、导入规范化。
所有函数都不修改入参；修改时只复制从根到目标节点路径上的祖先，其余子树按引用共享。
"""

import logging
import unicodedata
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Set, Tuple

from pydantic import TypeAdapter, ValidationError

from core.errors import (
    ItemNotFoundException,
    ParentNotFoundException,
    NameConflictException,
    InvalidNodeTypeException,
    InvalidFieldException,
    ValidationException,
)
from utils.timezone import ensure_utc, utc_now

from .notes_recurrence import effective_time, is_due
from .notes_schemas import NodeType, Reminder, TreeNode

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 255

# 同级排序：文件夹 < 笔记 < 任务
TYPE_ORDER = {NodeType.FOLDER: 0, NodeType.NOTE: 1, NodeType.TASK: 2}

# 各类型可写字段
TYPE_FIELDS = {
    NodeType.FOLDER: {"label"},
    NodeType.NOTE: {"label", "content", "reminder"},
    NodeType.TASK: {"label", "content", "completed", "reminder"},
}
PATCHABLE_FIELDS = {"label", "content", "completed", "reminder"}

_datetime_adapter = TypeAdapter(datetime)


class FoundNode(NamedTuple):
    """查找结果：节点本身及其所在的同级列表"""
    node: TreeNode
    siblings: List[TreeNode]


# ============ 基础工具 ============

def _sort_key(label: str) -> str:
    # 忽略大小写与重音
    decomposed = unicodedata.normalize("NFKD", label)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def _name_key(label: str) -> str:
    return label.strip().casefold()


def _touch(previous: datetime, now: Optional[datetime]) -> datetime:
    """新的 updated_at，保证严格递增"""
    now = ensure_utc(now) if now is not None else utc_now()
    if now > previous:
        return now
    return previous + timedelta(milliseconds=1)


def _clean_label(label: Any) -> str:
    if not isinstance(label, str):
        raise ValidationException("名称必须是字符串")
    label = label.strip()
    if not label:
        raise ValidationException("名称不能为空")
    if len(label) > MAX_LABEL_LENGTH:
        raise ValidationException(f"名称长度不能超过 {MAX_LABEL_LENGTH} 个字符")
    return label


def _coerce_type(value: Any) -> NodeType:
    if isinstance(value, NodeType):
        return value
    try:
        return NodeType(value)
    except ValueError:
        raise InvalidNodeTypeException(value) from None


def _coerce_reminder(value: Any) -> Optional[Reminder]:
    if value is None or isinstance(value, Reminder):
        return value
    try:
        return Reminder.model_validate(value)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        raise ValidationException("提醒格式错误", errors=errors) from None


def is_valid_id(value: Any) -> bool:
    """是否为规范格式的 UUID 字符串"""
    if not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False


def _locate(nodes: List[TreeNode], node_id: str, path: Tuple[int, ...] = ()) -> Optional[Tuple[List[int], int]]:
    """返回 (祖先下标路径, 在同级中的下标)"""
    for index, node in enumerate(nodes):
        if node.id == node_id:
            return list(path), index
        if node.is_folder and node.children:
            found = _locate(node.children, node_id, path + (index,))
            if found is not None:
                return found
    return None


def _level_at(nodes: List[TreeNode], path: List[int]) -> List[TreeNode]:
    for index in path:
        nodes = nodes[index].children or []
    return nodes


def _replace_level(nodes: List[TreeNode], path: List[int], new_level: List[TreeNode]) -> List[TreeNode]:
    """把 path 指向的同级列表替换为 new_level，沿路径复制祖先"""
    if not path:
        return new_level
    index = path[0]
    parent = nodes[index]
    new_children = _replace_level(parent.children or [], path[1:], new_level)
    if new_children is parent.children:
        return nodes
    result = list(nodes)
    result[index] = parent.model_copy(update={"children": new_children})
    return result


# ============ 查询 ============

def sort_nodes(nodes: List[TreeNode]) -> List[TreeNode]:
    """同级排序：类型优先，其次名称（忽略大小写与重音），稳定排序"""
    return sorted(nodes, key=lambda node: (TYPE_ORDER[node.type], _sort_key(node.label), node.label))


def find_node(nodes: List[TreeNode], node_id: str) -> Optional[FoundNode]:
    """深度优先查找，未找到返回 None"""
    for node in nodes:
        if node.id == node_id:
            return FoundNode(node, nodes)
        if node.is_folder and node.children:
            found = find_node(node.children, node_id)
            if found is not None:
                return found
    return None


def has_sibling_collision(siblings: List[TreeNode], label: str, exclude_id: Optional[str] = None) -> bool:
    """同级中是否已有同名条目（去空白、忽略大小写）"""
    key = _name_key(label)
    return any(
        _name_key(sibling.label) == key
        for sibling in siblings
        if sibling.id != exclude_id
    )


def iter_nodes(nodes: List[TreeNode]) -> Iterator[TreeNode]:
    """深度优先遍历所有节点"""
    for node in nodes:
        yield node
        if node.is_folder and node.children:
            yield from iter_nodes(node.children)


def find_due_reminders(nodes: List[TreeNode], now: datetime) -> List[TreeNode]:
    """收集所有到期提醒所在的节点"""
    return [node for node in iter_nodes(nodes) if is_due(node.reminder, now)]


def has_enabled_reminders(nodes: List[TreeNode]) -> bool:
    return any(node.reminder is not None and node.reminder.enabled for node in iter_nodes(nodes))


def collect_reminders(nodes: List[TreeNode], active_only: bool = True) -> List[TreeNode]:
    """带提醒的节点，按下一次触发时间排序"""
    found = [
        node for node in iter_nodes(nodes)
        if node.reminder is not None and (node.reminder.enabled or not active_only)
    ]
    return sorted(found, key=lambda node: effective_time(node.reminder))


# ============ 修改 ============

def _check_fields(node_type: NodeType, values: Dict[str, Any]):
    allowed = TYPE_FIELDS[node_type]
    for field, value in values.items():
        if value is not None and field not in allowed:
            raise InvalidFieldException(field, node_type.value)


def create_node(
    node_type: Any,
    label: Any,
    content: Optional[str] = None,
    completed: Optional[bool] = None,
    reminder: Any = None,
    now: Optional[datetime] = None,
) -> TreeNode:
    """创建新节点（服务端分配ID和时间戳）"""
    node_type = _coerce_type(node_type)
    label = _clean_label(label)
    _check_fields(node_type, {"content": content, "completed": completed, "reminder": reminder})
    timestamp = ensure_utc(now) if now is not None else utc_now()

    fields: Dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "label": label,
        "type": node_type,
        "created_at": timestamp,
        "updated_at": timestamp,
    }
    if node_type == NodeType.FOLDER:
        fields["children"] = []
    else:
        fields["content"] = content or ""
        fields["reminder"] = _coerce_reminder(reminder)
    if node_type == NodeType.TASK:
        fields["completed"] = bool(completed)
    return TreeNode(**fields)


def insert_node(nodes: List[TreeNode], parent_id: Optional[str], new_node: TreeNode) -> List[TreeNode]:
    """
    插入节点

    parent_id 为 None 时插入根层级，否则插入该文件夹；只对目标层级重新排序。

    Raises:
        ParentNotFoundException: 父节点不存在或不是文件夹
        NameConflictException: 目标层级已有同名条目
    """
    if parent_id is None:
        if has_sibling_collision(nodes, new_node.label):
            raise NameConflictException(new_node.label)
        return sort_nodes([*nodes, new_node])

    located = _locate(nodes, parent_id)
    if located is None:
        raise ParentNotFoundException(parent_id)
    path, index = located
    parent = _level_at(nodes, path)[index]
    if not parent.is_folder:
        raise ParentNotFoundException(parent_id)

    siblings = parent.children or []
    if has_sibling_collision(siblings, new_node.label):
        raise NameConflictException(new_node.label)
    return _replace_level(nodes, path + [index], sort_nodes([*siblings, new_node]))


def _validated_patch(node: TreeNode, patch: Dict[str, Any]) -> Dict[str, Any]:
    allowed = TYPE_FIELDS[node.type]
    changes: Dict[str, Any] = {}
    for field, value in patch.items():
        if field not in PATCHABLE_FIELDS:
            raise InvalidFieldException(field)
        if field not in allowed:
            if value is None:
                continue
            raise InvalidFieldException(field, node.type.value)

        if field == "label":
            changes["label"] = _clean_label(value)
        elif field == "content":
            if value is not None and not isinstance(value, str):
                raise ValidationException("内容必须是字符串")
            changes["content"] = value or ""
        elif field == "completed":
            if value is not None and not isinstance(value, bool):
                raise ValidationException("完成状态必须是布尔值")
            changes["completed"] = bool(value)
        elif field == "reminder":
            changes["reminder"] = _coerce_reminder(value)
    return changes


def update_node(
    nodes: List[TreeNode],
    node_id: str,
    patch: Dict[str, Any],
    now: Optional[datetime] = None,
) -> List[TreeNode]:
    """
    更新节点自身字段（label / content / completed / reminder）

    没有任何字段值发生变化时，原样返回传入的 nodes 对象。

    Raises:
        ItemNotFoundException: 节点不存在
        InvalidFieldException: 字段对该类型不合法或不可修改
        NameConflictException: 改名后与同级重名
    """
    located = _locate(nodes, node_id)
    if located is None:
        raise ItemNotFoundException(node_id)
    path, index = located
    siblings = _level_at(nodes, path)
    node = siblings[index]

    changes = {
        field: value
        for field, value in _validated_patch(node, patch).items()
        if getattr(node, field) != value
    }
    if not changes:
        return nodes

    if "label" in changes and has_sibling_collision(siblings, changes["label"], exclude_id=node.id):
        raise NameConflictException(changes["label"])

    changes["updated_at"] = _touch(node.updated_at, now)
    level = list(siblings)
    level[index] = node.model_copy(update=changes)
    if "label" in changes:
        level = sort_nodes(level)
    return _replace_level(nodes, path, level)


def delete_node(nodes: List[TreeNode], node_id: str) -> List[TreeNode]:
    """删除节点及其子树；节点不存在时原样返回"""
    located = _locate(nodes, node_id)
    if located is None:
        return nodes
    path, index = located
    level = _level_at(nodes, path)
    return _replace_level(nodes, path, level[:index] + level[index + 1:])


def move_node(
    nodes: List[TreeNode],
    node_id: str,
    new_parent_id: Optional[str],
    new_index: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[TreeNode]:
    """
    移动节点到新的父级（None 表示根层级）

    插入位置按 new_index 截断到 [0, len]，缺省放到末尾；目标层级不重新排序。
    目标父级在摘除节点后解析，因此不能移入自身或其后代。

    Raises:
        ItemNotFoundException: 节点不存在
        ParentNotFoundException: 目标父级不存在或不是文件夹
        NameConflictException: 目标层级已有同名条目
    """
    found = find_node(nodes, node_id)
    if found is None:
        raise ItemNotFoundException(node_id)
    node = found.node
    detached = delete_node(nodes, node_id)

    if new_parent_id is None:
        target_path: List[int] = []
        level = detached
    else:
        located = _locate(detached, new_parent_id)
        if located is None:
            raise ParentNotFoundException(new_parent_id)
        parent_path, parent_index = located
        parent = _level_at(detached, parent_path)[parent_index]
        if not parent.is_folder:
            raise ParentNotFoundException(new_parent_id)
        target_path = parent_path + [parent_index]
        level = parent.children or []

    if has_sibling_collision(level, node.label, exclude_id=node.id):
        raise NameConflictException(node.label)

    position = len(level) if new_index is None else max(0, min(new_index, len(level)))
    new_level = list(level)
    new_level.insert(position, node.model_copy(update={"updated_at": _touch(node.updated_at, now)}))
    return _replace_level(detached, target_path, new_level)


# ============ 导入 ============

def _parse_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return ensure_utc(_datetime_adapter.validate_python(value))
    except ValidationError:
        raise ValidationException(f"时间格式错误: {value}") from None


def _normalize_node(raw: Any, seen: Set[str], now: datetime) -> TreeNode:
    if isinstance(raw, TreeNode):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        raise ValidationException("条目数据格式错误")

    node_type = _coerce_type(raw.get("type"))
    label = _clean_label(raw.get("label"))

    raw_id = raw.get("id")
    if is_valid_id(raw_id) and raw_id not in seen:
        node_id = raw_id
    else:
        node_id = str(uuid.uuid4())
        if raw_id is not None:
            logger.debug(f"导入时重新分配条目ID: {raw_id} -> {node_id}")
    seen.add(node_id)

    optional_fields = {
        field: raw.get(field)
        for field in ("content", "completed", "reminder")
    }
    _check_fields(node_type, optional_fields)
    if raw.get("children") is not None and node_type != NodeType.FOLDER:
        raise InvalidFieldException("children", node_type.value)

    created_at = _parse_time(raw.get("createdAt", raw.get("created_at"))) or now
    updated_at = _parse_time(raw.get("updatedAt", raw.get("updated_at"))) or now
    if updated_at < created_at:
        updated_at = created_at

    fields: Dict[str, Any] = {
        "id": node_id,
        "label": label,
        "type": node_type,
        "created_at": created_at,
        "updated_at": updated_at,
    }
    if node_type == NodeType.FOLDER:
        children = raw.get("children") or []
        if not isinstance(children, list):
            raise ValidationException("children 必须是列表")
        fields["children"] = [_normalize_node(child, seen, now) for child in children]
    else:
        content = optional_fields["content"]
        if content is not None and not isinstance(content, str):
            raise ValidationException("内容必须是字符串")
        fields["content"] = content or ""
        fields["reminder"] = _coerce_reminder(optional_fields["reminder"])
    if node_type == NodeType.TASK:
        completed = optional_fields["completed"]
        if completed is not None and not isinstance(completed, bool):
            raise ValidationException("完成状态必须是布尔值")
        fields["completed"] = bool(completed)
    return TreeNode(**fields)


def normalize_tree(raw_nodes: List[Any], now: Optional[datetime] = None) -> List[TreeNode]:
    """
    规范化外部传入的整棵树（导入）

    - 保留规范 UUID 格式且在本次导入中首次出现的ID，其余重新分配
    - 补齐缺失的 createdAt / updatedAt，并保证 updatedAt >= createdAt
    - 保持传入顺序，不检查同级重名
    """
    if not isinstance(raw_nodes, list):
        raise ValidationException("导入数据必须是条目列表")
    timestamp = ensure_utc(now) if now is not None else utc_now()
    seen: Set[str] = set()
    return [_normalize_node(raw, seen, timestamp) for raw in raw_nodes]
