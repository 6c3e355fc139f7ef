from setuptools import find_packages, setup

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name="wlstreamer",
    version="0.1",
    description="Stream whichever Sway output has focus into a v4l2loopback device",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "Orjson",
        "psutil",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "wlstreamer=wlstreamer.run:main",
        ],
    },
    python_requires=">=3.11",
    package_data={
        "wlstreamer": ["settings.json"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
    ],
)
