"""Setup configuration for the Mutekeeper Discord bot."""

from setuptools import setup, find_packages

setup(
    name="mutekeeper",
    version="0.1.0",
    description="Durable, self-expiring mutes for Discord guilds",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.4",
        "aiosqlite>=0.19",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "mutekeeper=mutekeeper.main:main",
        ],
    },
)
