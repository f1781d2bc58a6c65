# src/ingestline/engine/__init__.py
"""Task engine: chain building, script interpretation, loading, liveness and the task lifecycle.

Import submodules directly (ingestline.engine.task, ingestline.engine.chain).
Nothing is re-exported here: plugins import the expression parser without
loading the chain builder.
"""
