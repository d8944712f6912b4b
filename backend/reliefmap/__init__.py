"""Relief map compositor backend.

This package turns an arbitrary geographic bounding box into a single
stitched, filtered terrain image. It selects a zoom level for the box,
fetches the covering shaded relief tiles through a throttled queue,
composites them into a raster cropped exactly to the box and, on the
server path, applies a high-contrast monochrome filter for engraving.

- Bounding boxes come from a square-constrained interactive selector
- Tile failures degrade the image instead of failing the request
- One automatic reduced-zoom retry when no tiles load at all
- Composited backgrounds are cached per (bounding box, snapshot) key

See the module docstrings of each subpackage for details.
"""
