"""
Setup script for Repair Price Estimator
"""

from pathlib import Path
from setuptools import setup, find_packages

# Read requirements
requirements = []
req_file = Path(__file__).parent / "requirements.txt"
if req_file.exists():
    with open(req_file) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                requirements.append(line)

setup(
    name="repair-price-estimator",
    version="1.0.0",
    author="Repair Price Estimator",
    description="Pricing engine and quote workflow for retail jewelry and watch repair",
    packages=find_packages(include=["repair_estimator", "repair_estimator.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        'test': [
            'pytest>=7.4',
            'pytest-asyncio>=0.23',
            'httpx>=0.25',
            'aiosqlite>=0.19',
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'repair-estimator=repair_estimator.main:run',
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business",
    ],
)
