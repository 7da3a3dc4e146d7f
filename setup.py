from setuptools import setup

with open("requirements.txt") as f:
    required = f.read().splitlines()

exec(open("pyextradist/version.py").read())
setup(
    name="pyextradist",
    version=__version__,  # noqa: F821
    description="Extra probability distributions with recycled, vectorized evaluation",
    install_requires=required,
    extras_require={"test": ["pytest"]},
    packages=["pyextradist"],
)
