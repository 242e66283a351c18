"""Application composition layer.

The controller wires adapters, use cases and view models into a runnable
storage assistant; the scheduler owns every timer of a mounted page.
"""
