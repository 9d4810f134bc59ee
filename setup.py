from setuptools import setup, find_packages

setup(
    name="blindcheck",
    version="0.1.0",
    description="Out-of-band callback confirmation engine for blind vulnerability detectors",
    author="soulmad",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"blindcheck": ["payload_definitions.yaml"]},
    install_requires=[
        "requests",
        "pyyaml",
        "colorama",
    ],
    entry_points={
        "console_scripts": [
            "blindcheck=blindcheck.cli:main",
        ],
    },
    python_requires=">=3.8",
)
