"""Bundled skill library used when SKILLS_DIR is not set.

Each skill directory contains:
- SKILL.md: Primary guidance with YAML frontmatter
- Additional .md files: Companion documents (examples, reference tables)
- Nested directories with their own SKILL.md: Sub-skills

Structure:
    library/
    ├── sql/
    │   ├── SKILL.md
    │   ├── optimizer/      # slow queries, indexes, plans
    │   └── debugger/       # failing queries, error messages
    └── xlsx/
        ├── SKILL.md
        ├── charts/
        └── formulas/       # with examples and a function reference table
"""
