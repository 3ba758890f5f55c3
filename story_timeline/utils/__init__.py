#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Utility helpers for the Story Timeline application.
"""
