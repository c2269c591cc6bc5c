"""
Setup script for the PoseOptimization pose-only bundle adjustment solver.
"""

from setuptools import setup, find_packages
import os


def read_readme():
    """Read README file for long description."""
    if os.path.exists('README.md'):
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    return "Robust monocular pose-only bundle adjustment"


# Core requirements (always installed)
install_requires = [
    'numpy>=1.19.0',
    'scipy>=1.6.0',
    'opencv-python>=4.5.0',
    'pandas>=1.2.0',
    'psutil>=5.8.0'
]

# Optional dependencies for different use cases
extras_require = {
    'dev': [
        'pytest>=6.0.0',
        'pytest-cov>=2.12.0',
        'black>=21.0.0',
        'isort>=5.9.0',
        'flake8>=3.9.0'
    ],
}

setup(
    name="pose-optimization",
    version="1.0.0",
    description="Robust monocular pose-only bundle adjustment (6-DoF camera pose refinement)",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=['PoseOptimization', 'PoseOptimization.*']),
    py_modules=['run_pose_optimization'],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Image Recognition",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        'console_scripts': [
            'pose-ba-demo=run_pose_optimization:main',
        ],
    },
    keywords=[
        "computer vision",
        "bundle adjustment",
        "pose estimation",
        "visual odometry",
        "SLAM",
        "Gauss-Newton",
        "Levenberg-Marquardt"
    ],
)
