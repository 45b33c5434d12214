"""
Setup configuration for the container CI/CD pipeline CDK Python application.

This setup.py file defines the package structure, dependencies, and metadata
for the CDK application that builds a CodePipeline with unit tests, Docker
image builds, Fargate deployments and CodeDeploy blue/green releases.
"""

from setuptools import setup, find_packages

# Read the README file for long description
try:
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = "Container CI/CD pipeline with CodePipeline and CodeDeploy using AWS CDK Python"

setup(
    name="container-cicd-pipeline",
    version="1.0.0",
    description="AWS CDK Python application for a container CI/CD pipeline",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="AWS CDK Team",
    author_email="aws-cdk@amazon.com",

    # Package configuration
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["app"],
    include_package_data=True,

    python_requires=">=3.9",

    # Dependencies
    install_requires=[
        "aws-cdk-lib>=2.175.0",
        "constructs>=10.0.0,<11.0.0",
        "pydantic>=2.0.0,<3.0.0",
    ],

    # Development dependencies
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "flake8>=5.0.0",
            "mypy>=1.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },

    entry_points={
        "console_scripts": [
            "cicd-pipeline=app:main",
        ],
    },

    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Build Tools",
        "Topic :: System :: Systems Administration",
    ],
    keywords="aws cdk codepipeline codebuild codedeploy ecs fargate blue-green ci-cd",
    license="Apache-2.0",
    zip_safe=False,
)
