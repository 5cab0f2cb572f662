"""
Source instrumentation: files that report their own execution.

- rules.py: which insertion each statement role gets
- transformer.py: planning, rewriting and validation
- probe.py: the object rewritten code calls
- cache.py: on-disk cache of rewrites
- loader.py: import hook and script runner
"""
