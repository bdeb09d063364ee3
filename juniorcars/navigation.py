"""Navigation tree operations.

Items live in one flat table linked by ``parent_id``. Every write that sets a
parent checks that the parent exists and that the item would not become its
own ancestor.
"""
from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from .cms import apply_fields, apply_search, apply_sort, get_or_404, paginate, parse_id, with_id
from .errors import BadRequest, Conflict
from .models import NavigationItem, db
from .schemas import (
    NavigationItemCreate,
    NavigationItemUpdate,
    NavigationListQuery,
    NavigationReorder,
    validate_payload,
    validate_query,
)

NAVIGATION_SORT_COLUMNS = {
    'orderIndex': NavigationItem.order_index,
    'label': NavigationItem.label,
    'createdAt': NavigationItem.created_at,
    'updatedAt': NavigationItem.updated_at,
}
NAVIGATION_REQUIRED_FIELDS = {'label', 'order_index', 'is_active', 'is_external', 'target'}


def list_navigation(args):
    params = validate_query(NavigationListQuery, args)
    query = NavigationItem.query.options(
        selectinload(NavigationItem.parent),
        selectinload(NavigationItem.children),
    )
    if params.parent_id is not None:
        query = query.filter(NavigationItem.parent_id == params.parent_id)
    query = apply_search(query, [NavigationItem.label, NavigationItem.url], params.search)
    query = apply_sort(query, NavigationItem, NAVIGATION_SORT_COLUMNS, params.sort_by, params.sort_order)
    return paginate(query, params.page, params.limit)


def get_navigation_item(raw_id):
    return get_or_404(NavigationItem, raw_id, 'Navigation item')


def build_tree(items, active_only=False):
    """Nest a flat list of items under their parents, siblings by order_index then id."""
    nodes = {}
    for item in items:
        if active_only and not item.is_active:
            continue
        node = item.to_dict(include_relations=False)
        node['children'] = []
        nodes[item.id] = node
    roots = []
    for node in nodes.values():
        parent = nodes.get(node['parentId'])
        if parent is not None:
            parent['children'].append(node)
        elif node['parentId'] is None:
            roots.append(node)
        # Nodes whose parent is inactive are dropped along with that parent.

    def sort_level(level):
        level.sort(key=lambda entry: (entry['orderIndex'], entry['id']))
        for entry in level:
            sort_level(entry['children'])

    sort_level(roots)
    return roots


def navigation_tree(active_only=False):
    items = NavigationItem.query.order_by(NavigationItem.order_index.asc(), NavigationItem.id.asc()).all()
    return build_tree(items, active_only=active_only)


def _require_parent(parent_id):
    parent = db.session.get(NavigationItem, parent_id)
    if not parent:
        raise BadRequest('Parent navigation item not found')
    return parent


def _ensure_label_available(label, parent_id, item_id=None):
    query = NavigationItem.query.filter(NavigationItem.label == label)
    if parent_id is None:
        query = query.filter(NavigationItem.parent_id.is_(None))
    else:
        query = query.filter(NavigationItem.parent_id == parent_id)
    if item_id is not None:
        query = query.filter(NavigationItem.id != item_id)
    if query.first():
        raise Conflict('Navigation item with this label already exists at this level')


def would_create_cycle(item_id, parent_id, parent_lookup=None):
    """Return True when making ``parent_id`` the parent of ``item_id`` closes a loop."""
    seen = set()
    current = parent_id
    while current is not None:
        if current == item_id:
            return True
        if current in seen:
            # Stored data already loops; refuse to extend it.
            return True
        seen.add(current)
        if parent_lookup is not None and current in parent_lookup:
            current = parent_lookup[current]
            continue
        node = db.session.get(NavigationItem, current)
        current = node.parent_id if node else None
    return False


def next_order_index(parent_id):
    query = db.session.query(func.max(NavigationItem.order_index))
    if parent_id is None:
        query = query.filter(NavigationItem.parent_id.is_(None))
    else:
        query = query.filter(NavigationItem.parent_id == parent_id)
    current_max = query.scalar()
    return (current_max or 0) + 1


def create_navigation_item(payload):
    data = validate_payload(NavigationItemCreate, payload)
    _ensure_label_available(data.label, data.parent_id)
    if data.parent_id is not None:
        _require_parent(data.parent_id)
    order_index = data.order_index if data.order_index is not None else next_order_index(data.parent_id)
    item = NavigationItem(
        label=data.label,
        url=data.url,
        parent_id=data.parent_id,
        order_index=order_index,
        is_active=data.is_active,
        is_external=data.is_external,
        target=data.target,
    )
    db.session.add(item)
    db.session.commit()
    current_app.logger.info(f'Created navigation item {item.id} ({item.label}).')
    return item


def update_navigation_item(raw_id, payload):
    item_id = parse_id(raw_id, 'navigation item')
    data = validate_payload(NavigationItemUpdate, with_id(payload, item_id))
    item = get_navigation_item(item_id)
    fields = data.to_fields()

    parent_id = fields['parent_id'] if 'parent_id' in fields else item.parent_id
    if 'parent_id' in fields and parent_id is not None:
        if parent_id == item.id:
            raise BadRequest('Navigation item cannot be its own parent')
        _require_parent(parent_id)
        if would_create_cycle(item.id, parent_id):
            raise BadRequest('Circular reference detected in navigation hierarchy')

    label = data.label or item.label
    if label != item.label or parent_id != item.parent_id:
        _ensure_label_available(label, parent_id, item.id)

    apply_fields(item, fields, NAVIGATION_REQUIRED_FIELDS)
    db.session.commit()
    return item


def delete_navigation_item(raw_id):
    item = get_navigation_item(raw_id)
    if item.children:
        raise BadRequest('Cannot delete navigation item with children. Please delete or move children first.')
    db.session.delete(item)
    db.session.commit()
    current_app.logger.info(f'Deleted navigation item {item.id}.')


def reorder_navigation(payload):
    """Apply a batch of ``{id, orderIndex, parentId}`` moves in one transaction."""
    data = validate_payload(NavigationReorder, payload)
    all_items = {item.id: item for item in NavigationItem.query.all()}
    for entry in data.items:
        if entry.id not in all_items:
            raise BadRequest(f'Navigation item not found: {entry.id}')
        if entry.parent_id is not None and entry.parent_id not in all_items:
            raise BadRequest('Parent navigation item not found')

    # Check the final shape of the tree, not each move in isolation.
    # An entry without parentId keeps its current parent.
    moves = {
        entry.id: entry.parent_id if 'parent_id' in entry.model_fields_set else all_items[entry.id].parent_id
        for entry in data.items
    }
    parent_lookup = {item_id: item.parent_id for item_id, item in all_items.items()}
    parent_lookup.update(moves)
    for item_id, parent_id in moves.items():
        if parent_id == item_id:
            raise BadRequest('Navigation item cannot be its own parent')
        if would_create_cycle(item_id, parent_id, parent_lookup=parent_lookup):
            raise BadRequest('Circular reference detected in navigation hierarchy')

    try:
        for entry in data.items:
            item = all_items[entry.id]
            item.order_index = entry.order_index
            item.parent_id = moves[entry.id]
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return navigation_tree()


def move_navigation_item(raw_id, direction):
    """Swap an item with its previous or next sibling."""
    item = get_navigation_item(raw_id)
    siblings_query = NavigationItem.query
    if item.parent_id is None:
        siblings_query = siblings_query.filter(NavigationItem.parent_id.is_(None))
    else:
        siblings_query = siblings_query.filter(NavigationItem.parent_id == item.parent_id)
    siblings = siblings_query.order_by(NavigationItem.order_index.asc(), NavigationItem.id.asc()).all()
    position = siblings.index(item)
    target = position - 1 if direction == 'up' else position + 1
    if target < 0 or target >= len(siblings):
        return item
    siblings[position], siblings[target] = siblings[target], siblings[position]
    entries = [
        {'id': sibling.id, 'orderIndex': index, 'parentId': sibling.parent_id}
        for index, sibling in enumerate(siblings)
    ]
    reorder_navigation({'items': entries})
    return item
