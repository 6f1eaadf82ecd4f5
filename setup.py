from setuptools import setup, find_packages

setup(
    name="quicklink",
    version="1.0.0",
    description="Cached linking for Go programs: capture a go build's link step once, relink without compiling",
    packages=find_packages(include=["quicklink", "quicklink.*"]),
    py_modules=["interceptor", "executor", "cleanup"],
    python_requires=">=3.10",
    install_requires=[],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "quicklink-intercept=interceptor:main",
            "quicklink-exec=executor:main",
            "quicklink-cleanup=cleanup:main",
        ],
    },
)
