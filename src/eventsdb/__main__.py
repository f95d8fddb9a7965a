"""Allow ``python -m eventsdb``."""

from eventsdb.main import main

main()
