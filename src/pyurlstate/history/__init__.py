"""Location model and location providers.

Providers abstract "where are we, how do we change it, and how do we hear
about changes we did not make".  The engine only ever reads and writes the
query component.
"""
