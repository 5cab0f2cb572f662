"""
Static analysis of source files.

- classifier.py: executable / non-executable / comment classification of
  every line
- structure.py: the code map (functions, blocks, conditions) of a file
- calculator.py: statistics derived from collected data
"""
