from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="dxfscene",
    version="0.3.0",
    description="Load DXF drawings into a renderable, queryable vector scene",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Graphics :: Graphics Conversion",
        "Topic :: Scientific/Engineering :: Visualization",
    ],
    python_requires=">=3.8",
    install_requires=[
        "ezdxf>=1.1.0",
        "click>=8.1.0",
        "tqdm>=4.65.0",
        "numpy>=1.24.0",
        "scipy",
        "shapely>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dxfscene=dxfscene.cli:main",
        ],
    },
    keywords="dxf cad vector graphics scene graph spatial index",
)
