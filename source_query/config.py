"""
Configuration for the Source query client
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Client configuration"""

    def __init__(self):
        # Query sessions (send and receive timeout, milliseconds)
        self.QUERY_TIMEOUT_MS = int(os.getenv('QUERY_TIMEOUT_MS', '5000'))

        # Master server (directory)
        self.MASTER_SERVER_HOST = os.getenv('MASTER_SERVER_HOST', 'hl2master.steampowered.com')
        self.MASTER_SERVER_PORT = int(os.getenv('MASTER_SERVER_PORT', '27011'))
        self.MASTER_REGION = int(os.getenv('MASTER_REGION', '0xFF'), 0)
        self.MASTER_FILTER = os.getenv('MASTER_FILTER', '')

        # Steam Web API
        self.STEAM_API_URL = os.getenv('STEAM_API_URL', 'https://api.steampowered.com')
        self.STEAM_API_KEY = os.getenv('STEAM_API_KEY', '')
        self.STEAM_API_TIMEOUT = float(os.getenv('STEAM_API_TIMEOUT', '5'))

        # Logging
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    @property
    def timeout(self) -> float:
        """Query timeout in seconds"""
        return self.QUERY_TIMEOUT_MS / 1000.0

    @classmethod
    def from_env(cls):
        """Create config from environment"""
        return cls()

    def __repr__(self):
        return (
            f"<Config master={self.MASTER_SERVER_HOST}:{self.MASTER_SERVER_PORT} "
            f"timeout={self.QUERY_TIMEOUT_MS}ms>"
        )


# Singleton instance
config = Config()
