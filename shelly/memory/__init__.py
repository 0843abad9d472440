"""Agent memory: journal, persisted semantic entries and similarity search."""