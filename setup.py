#!/usr/bin/env python3
"""
Setup script for UI Studio

Install the editor-side client with:
    pip install -e .

Or with the autosave backend:
    pip install -e ".[server]"
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = ""
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")

# Client dependencies
client_requirements = [
    "httpx>=0.26.0",
    "rich>=13.7.0",
    "aiofiles>=23.2.1",
    "python-dotenv>=1.0.0",
]

# Autosave backend dependencies
server_requirements = [
    "fastapi>=0.109.0",
    "uvicorn[standard]>=0.27.0",
    "sqlalchemy[asyncio]>=2.0.25",
    "aiosqlite>=0.19.0",
    "pydantic>=2.5.0",
    "pydantic-settings>=2.1.0",
]

setup(
    name="ui-studio",
    version="1.0.0",
    description="UI Studio - versioned autosave, history and session recovery for a live UI editor",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="UI Studio Team",
    license="MIT",
    packages=find_packages(include=["studio", "studio.*"]),
    python_requires=">=3.9",
    install_requires=client_requirements + server_requirements,
    extras_require={
        "client": client_requirements,
        "server": server_requirements,
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "faker>=22.0.0",
            "black>=24.1.0",
            "isort>=5.13.0",
            "mypy>=1.8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "studio=studio.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Framework :: FastAPI",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development",
        "Topic :: Text Editors",
    ],
    keywords="autosave version-history undo-redo recovery editor",
)
