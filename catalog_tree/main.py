"""
Command-line interface for the catalog tree.

Every command prints its result as JSON on stdout; failures print
"ERROR: <message>" and exit with status 1. Log output goes to stderr at the
level given by CATALOG_TREE_LOG_LEVEL.

Usage Examples:
    # Create tables
    catalog-tree init

    # Nested tree, only active categories
    catalog-tree tree --active-only

    # Flattened list with only categories 1 and 4 expanded
    catalog-tree flat --expand 1 --expand 4

    # One folder level
    catalog-tree children --parent 1

    # Create, then drop category 7 onto category 3
    catalog-tree create "Running Shoes" --parent 1
    catalog-tree reorder 7 3

    # Delete a category, promoting its children
    catalog-tree delete 4 --policy move-up
"""

import argparse
import json
import logging
import sys

from catalog_tree.services import category_admin_service as admin
from catalog_tree.services.category_deletion_service import DeletePolicy
from catalog_tree.services.database import initialize_app_database
from catalog_tree.services.exceptions import ServiceError
from catalog_tree.utils.config import get_config
from catalog_tree.utils.constants import CATEGORY_STATUSES, DEFAULT_PAGE_SIZE, STATUS_ALL

logger = logging.getLogger(__name__)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _parent_arg(value: str):
    """Parent id argument; "root" or "none" means the root level."""
    if value.lower() in ("root", "none"):
        return None
    return int(value)


# ============================================================================
# Commands
# ============================================================================


def cmd_init(args) -> dict:
    config = get_config()
    return {"database_url": config.database_url, "environment": config.environment}


def cmd_tree(args):
    return admin.tree(args.root, active_only=args.active_only)


def cmd_flat(args):
    return admin.flat_list(args.root, expanded_ids=args.expand, active_only=args.active_only)


def cmd_children(args):
    return admin.children(args.parent, active_only=args.active_only)


def cmd_list(args):
    return admin.list_page(
        search=args.search, status=args.status, page=args.page, per_page=args.per_page
    )


def cmd_create(args):
    fields = {
        "slug": args.slug,
        "parent_id": args.parent,
        "sort_order": args.order,
        "description": args.description,
        "is_active": not args.inactive,
        "is_featured": args.featured,
    }
    return admin.create(args.name, **fields).to_dict()


def cmd_update(args):
    updates = {}
    if args.name is not None:
        updates["name"] = args.name
    if args.slug is not None:
        updates["slug"] = args.slug
    if args.description is not None:
        updates["description"] = args.description
    if args.parent is not None:
        updates["parent_id"] = _parent_arg(args.parent)
    if args.order is not None:
        updates["sort_order"] = args.order
    if args.active is not None:
        updates["is_active"] = args.active
    if args.featured is not None:
        updates["is_featured"] = args.featured
    if not updates:
        raise ServiceError("Nothing to update")
    return admin.update(args.id, updates).to_dict()


def cmd_reorder(args):
    return admin.reorder(args.moved_id, args.target_id).to_dict()


def cmd_delete(args):
    return admin.delete(args.id, args.policy).to_dict()


def cmd_check_slug(args):
    return admin.check_slug(args.candidate, exclude_id=args.exclude)


def cmd_suggest_slug(args):
    return admin.generate_slug(args.base, exclude_id=args.exclude)


# ============================================================================
# Parser
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-tree",
        description="Manage a hierarchical product category tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage Examples:", 1)[1],
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    init_parser = subparsers.add_parser("init", help="Create the database tables")
    init_parser.set_defaults(func=cmd_init)

    tree_parser = subparsers.add_parser("tree", help="Print the nested category tree")
    tree_parser.add_argument("--root", type=int, help="Only the subtree below this category")
    tree_parser.add_argument("--active-only", action="store_true", help="Hide inactive categories")
    tree_parser.set_defaults(func=cmd_tree)

    flat_parser = subparsers.add_parser("flat", help="Print the flattened, depth-annotated list")
    flat_parser.add_argument("--root", type=int, help="Only the subtree below this category")
    flat_parser.add_argument(
        "--expand",
        type=int,
        action="append",
        help="Expand this category (repeatable); without it everything is expanded",
    )
    flat_parser.add_argument("--active-only", action="store_true", help="Hide inactive categories")
    flat_parser.set_defaults(func=cmd_flat)

    children_parser = subparsers.add_parser("children", help="List one folder level")
    children_parser.add_argument("--parent", type=int, help="Folder to open (default: roots)")
    children_parser.add_argument("--active-only", action="store_true", help="Hide inactive categories")
    children_parser.set_defaults(func=cmd_children)

    list_parser = subparsers.add_parser("list", help="Flat paginated listing")
    list_parser.add_argument("--search", help="Substring of name or slug")
    list_parser.add_argument("--status", choices=CATEGORY_STATUSES, default=STATUS_ALL)
    list_parser.add_argument("--page", type=int, default=1)
    list_parser.add_argument("--per-page", type=int, default=DEFAULT_PAGE_SIZE)
    list_parser.set_defaults(func=cmd_list)

    create_parser = subparsers.add_parser("create", help="Create a category")
    create_parser.add_argument("name", help="Display name")
    create_parser.add_argument("--slug", help="URL slug (generated from the name when omitted)")
    create_parser.add_argument("--parent", type=int, help="Parent category id")
    create_parser.add_argument("--order", type=int, help="Position among siblings (default: last)")
    create_parser.add_argument("--description")
    create_parser.add_argument("--inactive", action="store_true", help="Create as inactive")
    create_parser.add_argument("--featured", action="store_true", help="Mark as featured")
    create_parser.set_defaults(func=cmd_create)

    update_parser = subparsers.add_parser("update", help="Update a category")
    update_parser.add_argument("id", type=int)
    update_parser.add_argument("--name")
    update_parser.add_argument("--slug")
    update_parser.add_argument("--description")
    update_parser.add_argument("--parent", help="New parent id, or 'root'")
    update_parser.add_argument("--order", type=int, help="New position among siblings")
    active_group = update_parser.add_mutually_exclusive_group()
    active_group.add_argument("--activate", dest="active", action="store_const", const=True)
    active_group.add_argument("--deactivate", dest="active", action="store_const", const=False)
    featured_group = update_parser.add_mutually_exclusive_group()
    featured_group.add_argument("--feature", dest="featured", action="store_const", const=True)
    featured_group.add_argument("--unfeature", dest="featured", action="store_const", const=False)
    update_parser.set_defaults(func=cmd_update)

    reorder_parser = subparsers.add_parser(
        "reorder", help="Drop one category onto another (it takes the target's place)"
    )
    reorder_parser.add_argument("moved_id", type=int)
    reorder_parser.add_argument("target_id", type=int)
    reorder_parser.set_defaults(func=cmd_reorder)

    delete_parser = subparsers.add_parser("delete", help="Delete a category")
    delete_parser.add_argument("id", type=int)
    delete_parser.add_argument(
        "--policy",
        choices=[p.value for p in DeletePolicy],
        required=True,
        help="delete-all removes the subtree; move-up promotes the children",
    )
    delete_parser.set_defaults(func=cmd_delete)

    check_parser = subparsers.add_parser("check-slug", help="Check whether a slug is free")
    check_parser.add_argument("candidate")
    check_parser.add_argument("--exclude", type=int, help="Category being edited")
    check_parser.set_defaults(func=cmd_check_slug)

    suggest_parser = subparsers.add_parser("suggest-slug", help="Suggest a free slug")
    suggest_parser.add_argument("base", help="Base slug or display name")
    suggest_parser.add_argument("--exclude", type=int, help="Category being edited")
    suggest_parser.set_defaults(func=cmd_suggest_slug)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        initialize_app_database()
        _print_json(args.func(args))
        return 0
    except (ServiceError, ValueError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
