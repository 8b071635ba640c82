"""Analysis of the sensor performance once it is aligned.

- `EfficiencyMap`: per-region efficient/total track counters
- `EfficiencyAna`: fills one map per sensor from the event stream
"""

from .efficiency import EfficiencyAna, EfficiencyMap
