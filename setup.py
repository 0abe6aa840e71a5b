"""Setup script for inkscreen, the e-ink screen rendering service."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, keeping test tooling in the dev extra
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    content = requirements_file.read_text().strip()
    lines = content.split("\n")

    for line in lines:
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        if "pytest" in line:
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="inkscreen",
    version="0.1.0",
    description="Renders templated SVG dashboards to 1-bit BMP images for e-ink panels",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Inkscreen Team",
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements,
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Graphics :: Graphics Conversion",
        "Topic :: System :: Hardware",
        "Framework :: AsyncIO",
        "Framework :: aiohttp",
    ],
    keywords="e-ink epaper bmp svg dashboard prometheus raspberry-pi async",
    entry_points={
        "console_scripts": [
            "inkscreen=inkscreen_lite.__main__:main",
        ],
    },
    package_data={
        "inkscreen_lite": [
            "assets/*.j2",
        ],
    },
    zip_safe=False,
    platforms=["linux", "macos"],
)
