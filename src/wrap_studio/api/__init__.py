"""
User-facing API: the layer model, projects, history and the editing session.

- :py:mod:`wrap_studio.api.layers`: layer and brush stroke records
- :py:mod:`wrap_studio.api.project`: project record
- :py:mod:`wrap_studio.api.history`: undo/redo history
- :py:mod:`wrap_studio.api.session`: editing session
"""
