import re

from setuptools import setup
from os import path
from io import open

here = path.abspath(path.dirname(__file__))

with open(path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

# Read the version without importing the package, its dependencies may not be
# installed yet.
with open(path.join(here, "lambda_trace_context", "version.py"), encoding="utf-8") as f:
    __version__ = re.search(r'^__version__ = "([^"]+)"', f.read(), re.M).group(1)

setup(
    name="lambda_trace_context",
    version=__version__,
    description="Datadog trace context extraction for AWS Lambda invocations",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/DataDog/datadog-lambda-python",
    author="Datadog, Inc.",
    author_email="dev@datadoghq.com",
    classifiers=[
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="datadog aws lambda tracing x-ray",
    packages=["lambda_trace_context"],
    python_requires=">=3.9, <4",
    install_requires=[
        "ujson>=5.9.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "flake8>=7.0.0",
        ]
    },
)
