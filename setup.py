import setuptools

with open("classical_tagger/.version") as f:
    version = f.read().strip()

setuptools.setup(
    name="classical-tagger",
    version=version,
    python_requires=">=3.11.0",
    entry_points={"console_scripts": ["classical-tagger = classical_tagger.__main__:main"]},
    packages=["classical_tagger"],
    package_data={"classical_tagger": [".version"]},
    install_requires=[
        "appdirs",
        "click",
        "httpx",
        "mutagen",
        "pyyaml",
    ],
    extras_require={"test": ["pytest"]},
)
