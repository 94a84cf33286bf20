"""Setup script for Branch Narrator Action"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
this_directory = Path(__file__).parent
long_description = ""
readme_path = this_directory / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")

setup(
    name="branch-narrator-action",
    version="0.3.0",
    author="Better Vibe",
    author_email="",
    description="CI orchestration for branch-narrator: risk reports, baseline deltas and PR comments",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/better-vibe/branch-narrator-action",
    project_urls={
        "Bug Tracker": "https://github.com/better-vibe/branch-narrator-action/issues",
        "Source Code": "https://github.com/better-vibe/branch-narrator-action",
    },
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Quality Assurance",
        "Topic :: Software Development :: Build Tools",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    python_requires=">=3.11",
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.0.0",
        "requests>=2.28.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "hypothesis>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "narrator-action=narrator_action.cli:app",
        ],
    },
    keywords="github-actions ci code-review risk-report pull-request",
)
