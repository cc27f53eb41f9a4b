#!/usr/bin/env python
# -*- coding: utf-8 -*-

from setuptools import setup, find_packages

# requirements
install_requires = [
    "SQLAlchemy>=2.0,<3.0",
    "PyMySQL>=1.0",
    "blinker>=1.6",
    "click>=8.0",
    "Flask>=2.3",
    "requests>=2.28",
]

dev_requires = [
    "flake8>=6.0",
    "pytest>=7.0",
    "pytest-mock>=3.10",
] + install_requires


setup(name="dbferry",
      version=__import__("dbferry").__version__,
      description="periodic table replication between databases.",
      keywords="replication sync master slave mysql",
      packages=find_packages(exclude=['docs', 'tests']),
      license="MIT",
      zip_safe=False,
      long_description=open("README.rst").read(),
      python_requires=">=3.8",
      install_requires=install_requires,
      extras_require={
          "dev": dev_requires,
          "test": ["pytest>=7.0", "pytest-mock>=3.10"],
      },
      entry_points={
          "console_scripts": [
              "dbferry-sync = dbferry.apps.msync:main",
              "dbferry-multi = dbferry.apps.mmulti:main",
              "dbferry-serve = dbferry.apps.mserve:main",
              "dbferry-purge = dbferry.apps.mpurge:main",
          ],
      },
      classifiers=[
          "Topic :: Software Development",
          "Development Status :: 3 - Alpha",
          "Intended Audience :: Developers",
          "License :: OSI Approved :: MIT License",
          "Programming Language :: Python :: 3",
          "Programming Language :: Python :: Implementation :: CPython",
      ])
