"""Catalog tree - hierarchical product category engine.

Stores categories with parent links and sibling order, and derives from
them a nested tree, a flattened expand/collapse-aware list, folder views,
drag-and-drop reordering and cascading deletion.
"""

__version__ = "0.1.0"
