"""Setup script for the CalendarBot recurrence engine."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, keeping test tooling out of install_requires
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
test_requirements = []

if requirements_file.exists():
    content = requirements_file.read_text().strip()
    lines = content.split("\n")

    for line in lines:
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        if "pytest" in line or "testing" in line.lower():
            test_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="calendarbot-engine",
    version="0.1.0",
    description="Recurrence expansion, scoped series edits and drag retargeting for calendar UIs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="CalendarBot Team",
    author_email="support@calendarbot.local",
    url="https://github.com/calendarbot/calendarbot",
    project_urls={
        "Source": "https://github.com/calendarbot/calendarbot",
        "Tracker": "https://github.com/calendarbot/calendarbot/issues",
    },
    # Package configuration
    packages=find_packages(include=["calendarbot_engine", "calendarbot_engine.*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Topic :: Software Development :: Libraries",
    ],
    keywords="calendar rrule recurrence icalendar rfc5545 drag-and-drop scheduling",
    entry_points={
        "console_scripts": [
            "calendarbot-engine=calendarbot_engine.__main__:main",
        ],
    },
    package_data={
        "calendarbot_engine": [
            "config.yaml.example",
        ],
    },
    zip_safe=False,
)
