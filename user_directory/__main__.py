"""
User directory MCP server entry point.
"""
from user_directory.core.config import config
from user_directory.core.server import UserDirectoryServer
from user_directory.utils.logging_config import configure_logging

def main():
    """Run the user directory MCP server with settings from the environment."""
    configure_logging(config)
    UserDirectoryServer(config=config).run()

if __name__ == "__main__":
    main()
