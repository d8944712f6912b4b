"""Geographic primitives: bounding boxes, tile addressing and zoom selection.

Submodules:
    - models: BoundingBox, TileCoordinate and the tile fetch outcome types.
    - tiles: Web Mercator conversions between coordinates and tile indices.
    - zoom: Span-driven zoom selection with coverage and tile count caps.
"""
