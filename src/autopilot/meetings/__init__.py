"""Meeting lifecycle -- schemas, platform detection, schedule extraction and
the time-driven orchestrator that joins, records and leaves meetings.
"""
