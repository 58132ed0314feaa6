"""
Tuya Sensor Collector
=====================

Pulls temperature / humidity / battery readings from Tuya cloud sensors and
stores them in InfluxDB and/or QuestDB.

HOW IT'S ORGANIZED:
------------------
- models/    = Data structures (readings, outcomes, the Tuya session)
- services/  = Workers (sign requests, talk to Tuya, write to databases)
- utils/     = Small helpers (validation, line protocol)
- main.py    = Loads the config and runs one collection pass
- migrate.py = One-off InfluxDB -> QuestDB history copy
"""

__version__ = "1.0.0"
