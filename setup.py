from setuptools import setup, find_packages
import re
from pathlib import Path


def read_readme():
    this_directory = Path(__file__).parent
    readme_file = this_directory / 'README.md'
    if readme_file.exists():
        return readme_file.read_text(encoding='utf-8')
    return ""

def get_version():
    init_file = Path(__file__).parent / 'taskstore' / '__init__.py'
    if init_file.exists():
        match = re.search(r'__version__\s*=\s*["\']([^"\']+)["\']', init_file.read_text())
        if match:
            return match.group(1)
    return "0.1.0"


setup(
    name="taskstore",
    version=get_version(),
    description="Async Postgres data-access layer for task records on a shared connection pool.",
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    packages=find_packages(include=["taskstore", "taskstore.*"]),
    python_requires=">=3.11",
    install_requires=[
        "psycopg[binary]>=3.1",
        "psycopg-pool>=3.2",
        "pydantic>=2.5",
        "typer>=0.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
    ],
    keywords="postgres psycopg connection-pool repository asyncio",
    entry_points={
        'console_scripts': [
            'taskstore=taskstore.cli:app',
        ],
    },
)
