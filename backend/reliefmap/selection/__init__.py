"""Interactive square bounding box selection.

See reliefmap.selection.square for the selector state machine and the
square constraint used for drawing and resizing.
"""
