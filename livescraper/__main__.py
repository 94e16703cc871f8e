"""``python -m livescraper``"""

from .cli import main

main()
