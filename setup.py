# -*- coding: utf-8 -*-
import setuptools
import pathlib
import site
import sys

# odd bug with develop (editable) installs, see: https://github.com/pypa/pip/issues/7953
site.ENABLE_USER_SITE = "--user" in sys.argv[1:]

required = [
    "numpy",
    "scipy",
    "simplejson>= 3.19.2",
    "mashumaro",
    "loguru",
    "rich>=13.0.0",
    "click>=8.0.0",
    "click-option-group",
    "psutil>=6.1.0",
    "tqdm",
    "tifffile",
    "scikit-image",
]

extras = {
    "test": ["pytest", "doit"],
}

here = pathlib.Path(__file__).parent.resolve()

long_description = (here / "README.md").read_text(encoding="utf-8")

# Read version
version = {}
with open("src/mdscope/_version.py", "r") as f:
    exec(f.read(), version)

if __name__ == "__main__":
    setuptools.setup(
        name="mdscope",
        version=version["__version__"],
        description="Multi-dimensional microscope acquisition and image correction.",
        long_description=long_description,
        long_description_content_type="text/markdown",
        keywords=[
            "microscopy",
            "z-stack",
            "acquisition",
            "focus",
            "image correction",
        ],
        classifiers=[
            "License :: OSI Approved :: MIT License",
            "Development Status :: 2 - Pre-Alpha",
        ],
        license="MIT",
        package_dir={"": "src"},
        packages=setuptools.find_packages(
            where="src",
            exclude=["*.test", "*.test.*", "test.*", "test"],
        ),
        entry_points={
            "console_scripts": [
                "mdscope=mdscope.cli:cli",
            ],
        },
        install_requires=required,
        extras_require=extras,
        python_requires=">= 3.11",
        package_data={"": ["*.md", "*.json"], "mdscope.system": ["scopes/*.ini"]},
    )
