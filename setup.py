"""Setup configuration for Vibecord Discord Bot."""

from setuptools import setup, find_packages

setup(
    name="vibecord",
    version="0.0.1",
    description="A Discord bot with scripted responses, AI personas and vibe checks",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
        "aiosqlite>=0.20",
        "openai>=1.40",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "vibecord=vibecord.main:main",
        ],
    },
)
