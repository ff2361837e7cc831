import os

from setuptools import find_packages, setup  # isort: skip


HERE = os.path.dirname(os.path.abspath(__file__))


def load_readme():
    readme = os.path.join(HERE, "README.md")
    if not os.path.exists(readme):
        return ""
    with open(readme, "r", encoding="utf-8") as f:
        return f.read()


setup(
    name="covtrack",
    version="0.1.0",
    description="Line and branch coverage collection and reporting for Python programs",
    long_description=load_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*", "benchmarks*", "scripts*"]),
    zip_safe=False,
    # sys.monitoring is required for instrumentation
    python_requires=">=3.12",
    install_requires=[
        "attrs>=20",
        "envier~=0.6.1",
        "xmltodict>=0.12",
    ],
    extras_require={
        "test": [
            "hypothesis",
            "mock",
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "covtrack = covtrack.commands.covtrack_run:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: 3.14",
        "Topic :: Software Development :: Testing",
    ],
)
